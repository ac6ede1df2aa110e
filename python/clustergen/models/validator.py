"""
clustergen/models/validator.py

Validation helpers built on pydantic's TypeAdapter:
  - validate_type: check arbitrary decoded data against a type
  - load_cluster_specification: parse YAML/JSON text into a ClusterSpecification
"""

from typing import Any, Type, TypeVar

import yaml
from pydantic import TypeAdapter, ValidationError

from clustergen.models.cluster import ClusterSpecification

T = TypeVar("T")


def validate_type(obj: Any, expected_type: Type[T]) -> T:
    """
    Validates that a given Python object conforms to the expected pydantic-based type.

    Args:
        obj (Any): The object to validate.
        expected_type (Type[T]): The type (pydantic or otherwise) to validate against.

    Returns:
        T: The validated object, cast to the expected type.

    Raises:
        ValueError: If validation fails.
    """
    try:
        return TypeAdapter(expected_type).validate_python(obj)
    except ValidationError as e:
        raise ValueError(f"Validation failed for type {expected_type}: {e}") from e


def load_cluster_specification(text: str) -> ClusterSpecification:
    """Parse a cluster specification document.

    JSON is a subset of YAML, so both formats are accepted.

    Args:
        text: The document contents.

    Returns:
        ClusterSpecification: The validated, immutable specification.

    Raises:
        ValueError: If the document is not valid YAML or fails validation.
    """
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Cluster specification is not valid YAML/JSON: {e}") from e
    return validate_type(raw, ClusterSpecification)
