"""
academy_api.db.repositories

Thin repository classes over `AsyncSession`. They flush but never commit; the
caller (router or service) owns the transaction.
"""
