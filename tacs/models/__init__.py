"""Database models."""

from tacs.models.activation import ActivationRule
from tacs.models.audit import ActivationAudit

__all__ = ["ActivationRule", "ActivationAudit"]
