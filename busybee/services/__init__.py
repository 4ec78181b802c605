"""
busybee Services Package

Core Services:
- authorization: task ownership and visibility predicates
- url_fetcher: SSRF-guarded remote image download into file storage
- bootstrap: startup seeding of the canonical accounts
"""
