"""Request identity for learner-scoped endpoints.

Authentication happens upstream; the gateway forwards the verified learner id
in the ``X-Learner-Id`` header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Header

from .errors import AuthRequired

LEARNER_ID_HEADER = "X-Learner-Id"


def require_identity(x_learner_id: Optional[str] = Header(default=None)) -> str:
    learner_id = (x_learner_id or "").strip()
    if not learner_id:
        raise AuthRequired(f"Missing {LEARNER_ID_HEADER} header.")
    return learner_id


__all__ = ["LEARNER_ID_HEADER", "require_identity"]
