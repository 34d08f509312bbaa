"""
repositories/ - Data Access Layer
==================================
Each repository encapsulates all SQL queries for a specific domain entity.
Repositories receive raw data from the database and return domain model objects.
Money-moving writes live in ledger_repo and always run inside one transaction.
"""
