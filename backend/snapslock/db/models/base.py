from __future__ import annotations

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase

NOW_ISO_SQL = "(strftime('%Y-%m-%dT%H:%M:%fZ','now'))"


def now_iso_default() -> sa.TextClause:
    return sa.text(NOW_ISO_SQL)


class Base(DeclarativeBase):
    pass


# Import all model modules so Base.metadata is fully populated for create_all().
from snapslock.db.models import auth_attempts as _auth_attempts  # noqa: F401,E402
from snapslock.db.models import image_likes as _image_likes  # noqa: F401,E402
from snapslock.db.models import image_tags as _image_tags  # noqa: F401,E402
from snapslock.db.models import images as _images  # noqa: F401,E402
from snapslock.db.models import tags as _tags  # noqa: F401,E402
