"""Customer id helpers shared by the directory adapter and the CLI."""

import re
from typing import Optional

_RESOURCE_NAME_PATTERN = re.compile(r"^customers/(\d+)$")


def normalize_customer_id(customer_id: Optional[str]) -> Optional[str]:
    """
    Strip dashes and whitespace from a customer id.

    Accepts the dashed display form (``123-456-7890``) as well as plain
    digits. Returns None for empty input.

    Raises:
        ValueError: If the id contains anything other than digits
    """
    if customer_id is None:
        return None
    cleaned = str(customer_id).strip().replace("-", "")
    if not cleaned:
        return None
    if not cleaned.isdigit():
        raise ValueError(f"Invalid customer id '{customer_id}'. Expected digits only.")
    return cleaned


def format_customer_id(customer_id: Optional[str]) -> str:
    """Format a ten digit customer id as ``xxx-xxx-xxxx``; other ids are returned as-is."""
    if not customer_id:
        return ""
    value = str(customer_id)
    if len(value) == 10 and value.isdigit():
        return f"{value[:3]}-{value[3:6]}-{value[6:]}"
    return value


def customer_id_from_resource_name(resource_name: str) -> str:
    """Extract the id from a ``customers/{id}`` resource name."""
    match = _RESOURCE_NAME_PATTERN.match(resource_name.strip())
    if match:
        return match.group(1)
    return resource_name.rsplit("/", 1)[-1]
