from __future__ import annotations

import logging
from typing import Optional

from labreview.config import Settings
from labreview.infra.db.inmemory import build_inmemory_repositories
from labreview.infra.db.models import Base
from labreview.infra.db.repositories import Repositories
from labreview.infra.db.session import create_engine_for_url, create_sqlalchemy_session_factory
from labreview.infra.db.sql_analyses import (
    SqlAnalysisRepository,
    SqlNotificationRepository,
    SqlReportRepository,
    SqlReviewRepository,
)
from labreview.infra.db.sql_profiles import SqlDoctorRepository, SqlPatientRepository

logger = logging.getLogger(__name__)


def build_sql_repositories(database_url: str) -> Repositories:
    engine = create_engine_for_url(database_url)

    # Create tables if they do not exist. In a real deployment this should be
    # handled by migrations, but this is convenient for early setups.
    Base.metadata.create_all(engine)

    session_factory = create_sqlalchemy_session_factory(engine)
    return Repositories(
        doctors=SqlDoctorRepository(session_factory),
        patients=SqlPatientRepository(session_factory),
        analyses=SqlAnalysisRepository(session_factory),
        reports=SqlReportRepository(session_factory),
        notifications=SqlNotificationRepository(session_factory),
        reviews=SqlReviewRepository(session_factory),
    )


def build_repositories(config: Settings, database_url: Optional[str] = None) -> Repositories:
    """Select the repository implementation for this process.

    SQL-backed repositories are used when USE_SQL_REPOS is enabled and a
    DATABASE_URL is configured; otherwise everything stays in memory.
    """

    if not config.use_sql_repos:
        return build_inmemory_repositories()

    db_url = database_url or config.database_url
    if not db_url:
        logger.warning("USE_SQL_REPOS is enabled but DATABASE_URL is not set; using in-memory repositories")
        return build_inmemory_repositories()

    return build_sql_repositories(db_url)
