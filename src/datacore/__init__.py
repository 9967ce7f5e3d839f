"""
datacore: a generic data-access core.

Repositories over SQLAlchemy Core tables, sharing one explicitly constructed
`Database` (connection manager, statement executor, transaction state).

    from datacore.config.settings import get_settings
    from datacore.database import Database
    from datacore.repositories import RiskRepository

    db = Database.from_settings(get_settings())
    risks = RiskRepository(db)
"""

__version__ = "0.1.0"
