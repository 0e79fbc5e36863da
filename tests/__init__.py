"""
sshuserauth test suite.
"""
