"""
Resource classification and column routing

Person-like resources are referenced through contact columns, consumable and
cost resources through picklists linked to cells of the resource sheet.
"""
from dataclasses import dataclass
from typing import Any, Optional

from models import ResourceClass, SourceResource


@dataclass(frozen=True)
class ColumnFamily:
    """Where a resource class lives on each sheet"""
    resource_column: str
    resource_column_type: str
    task_column: str
    task_column_type: str


COLUMN_FAMILIES = {
    ResourceClass.PERSON: ColumnFamily('Team Members', 'CONTACT_LIST', 'Work Resource', 'MULTI_CONTACT_LIST'),
    ResourceClass.CONSUMABLE: ColumnFamily('Materials', 'TEXT_NUMBER', 'Material Resource', 'MULTI_PICKLIST'),
    ResourceClass.COST: ColumnFamily('Cost Resources', 'TEXT_NUMBER', 'Cost Resource', 'MULTI_PICKLIST'),
}

_CLASS_ALIASES = {
    'work': ResourceClass.PERSON,
    'person': ResourceClass.PERSON,
    'people': ResourceClass.PERSON,
    'material': ResourceClass.CONSUMABLE,
    'consumable': ResourceClass.CONSUMABLE,
    'cost': ResourceClass.COST,
}

# MS Project PjResourceTypes
_CLASS_CODES = {
    0: ResourceClass.PERSON,
    1: ResourceClass.CONSUMABLE,
    2: ResourceClass.COST,
}


def explicit_class(value: Any) -> Optional[ResourceClass]:
    """Interpret an explicit resource type value, or None if absent/unknown"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, ResourceClass):
        return value
    if isinstance(value, int):
        return _CLASS_CODES.get(value)
    text = str(value).strip().lower()
    if text.isdigit():
        return _CLASS_CODES.get(int(text))
    return _CLASS_ALIASES.get(text)


def heuristic_class(resource: SourceResource) -> ResourceClass:
    """Classify from attributes: material label, then email/levelling, else cost"""
    if resource.material_label and str(resource.material_label).strip():
        return ResourceClass.CONSUMABLE
    if (resource.email and str(resource.email).strip()) or resource.can_level:
        return ResourceClass.PERSON
    return ResourceClass.COST


def classify(resource: SourceResource) -> ResourceClass:
    """
    Decide which of the three resource classes applies

    An explicit type on the resource always wins; attributes are only used
    when it is missing or unrecognised.
    """
    explicit = explicit_class(resource.resource_class)
    if explicit is not None:
        return explicit
    return heuristic_class(resource)


def classification_conflict(resource: SourceResource) -> Optional[str]:
    """
    Describe a disagreement between the explicit type and the attributes

    Returns:
        Warning text, or None when the signals agree (or there is no explicit type)
    """
    explicit = explicit_class(resource.resource_class)
    if explicit is None:
        return None

    has_email = bool(resource.email and str(resource.email).strip())
    has_label = bool(resource.material_label and str(resource.material_label).strip())
    if explicit is not ResourceClass.PERSON and has_email:
        reason = 'has an email address'
    elif explicit is not ResourceClass.CONSUMABLE and has_label:
        reason = 'has a material label'
    else:
        return None

    return (f"Resource '{resource.name}' ({resource.id}) is typed {explicit.value} but {reason}; "
            f"keeping {explicit.value}")


def column_family_for(resource_class: ResourceClass) -> ColumnFamily:
    return COLUMN_FAMILIES[resource_class]
