"""
Operator command line for toolsync.
"""
