"""Fluent query construction bound to model delegates."""

from queryforge.query.builder import QueryBuilder, QueryDescriptor
from queryforge.query.delegate import ModelDelegate
from queryforge.query.models import ModelRegistry

__all__ = ["ModelDelegate", "ModelRegistry", "QueryBuilder", "QueryDescriptor"]
