"""Central registry for SQLAlchemy models.

Importing this module loads every ORM class so relationships declared by
string resolve when a single domain module is imported in isolation.
"""

from atelier.domain.requests import db_models as request_db_models  # noqa: F401
from atelier.domain.proposals import db_models as proposal_db_models  # noqa: F401
from atelier.domain.timeline import db_models as timeline_db_models  # noqa: F401
from atelier.domain.messaging import db_models as messaging_db_models  # noqa: F401
from atelier.domain.events import db_models as event_db_models  # noqa: F401
