"""
Paste Vault - text pastes that expire by time or by view count.
"""
