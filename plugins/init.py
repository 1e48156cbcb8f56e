from __future__ import annotations

"""Plugin import hub.

Importing this module registers lookups via decorators at import-time.
Keep this file lightweight: only import plugin modules.
"""

from . import dictionary  # noqa: F401
from . import encyclopedia  # noqa: F401
from . import thesaurus  # noqa: F401
