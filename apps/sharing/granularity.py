"""
Field Granularity Module
========================

Composite profile fields (a full name, a postal address, a phone number, an
email address) are stored as a single string but shared component by
component. This module describes how each field type breaks down into
granular components, parses stored values into those components and
recomposes components back into a display string.

Parsing never raises: a value that does not match the expected shape yields
an empty mapping, and callers treat the field as one opaque value.

Example:
    Splitting an address and rebuilding it::

        from apps.sharing.granularity import get_composition, parse_composite_field

        composition = get_composition('address')
        parts = parse_composite_field('123 Main St, Springfield, CA 90210', composition)
        # {'streetNumber': '123', 'streetName': 'Main St', 'city': 'Springfield',
        #  'state': 'CA', 'zip': '90210'}

        compose_display_value(parts, composition)
        # '123 Main St, Springfield, CA 90210'
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class ComponentValidation:
    pattern: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None


@dataclass(frozen=True)
class GranularComponent:
    """A sub-part of a composite field that can be shared on its own."""

    id: str
    label: str
    required: bool = False
    default_shared: bool = False
    validation: ComponentValidation = field(default_factory=ComponentValidation)


@dataclass(frozen=True)
class FieldComposition:
    """How one field type is split into components and displayed again."""

    field_name: str
    field_type: str
    display_format: str
    components: Tuple[GranularComponent, ...]
    input_separator: str = ' '
    display_separator: str = ' '

    @property
    def component_ids(self) -> List[str]:
        return [component.id for component in self.components]


STANDARD_FIELD_COMPOSITIONS: Dict[str, FieldComposition] = {
    'fullName': FieldComposition(
        field_name='Full Name',
        field_type='name',
        display_format='{firstName} {middleName} {lastName}',
        input_separator=' ',
        display_separator=' ',
        components=(
            GranularComponent(
                id='firstName', label='First Name', required=True, default_shared=True,
                validation=ComponentValidation(min_length=1, max_length=50),
            ),
            GranularComponent(
                id='middleName', label='Middle Name', required=False, default_shared=False,
                validation=ComponentValidation(max_length=50),
            ),
            GranularComponent(
                id='lastName', label='Last Name', required=True, default_shared=True,
                validation=ComponentValidation(min_length=1, max_length=50),
            ),
        ),
    ),
    'fullAddress': FieldComposition(
        field_name='Address',
        field_type='address',
        display_format='{streetNumber} {streetName}, {city}, {state} {zip}',
        input_separator=', ',
        display_separator=', ',
        components=(
            GranularComponent(
                id='streetNumber', label='Street Number', required=True, default_shared=False,
                validation=ComponentValidation(pattern=r'^\d+$'),
            ),
            GranularComponent(
                id='streetName', label='Street Name', required=True, default_shared=False,
                validation=ComponentValidation(min_length=1, max_length=100),
            ),
            GranularComponent(
                id='city', label='City', required=True, default_shared=True,
                validation=ComponentValidation(min_length=1, max_length=50),
            ),
            GranularComponent(
                id='state', label='State', required=True, default_shared=True,
                validation=ComponentValidation(pattern=r'^[A-Z]{2}$'),
            ),
            GranularComponent(
                id='zip', label='ZIP Code', required=True, default_shared=False,
                validation=ComponentValidation(pattern=r'^\d{5}(-\d{4})?$'),
            ),
        ),
    ),
    'phoneNumber': FieldComposition(
        field_name='Phone Number',
        field_type='phone',
        display_format='({areaCode}) {exchange}-{number}',
        input_separator='-',
        display_separator=' ',
        components=(
            GranularComponent(
                id='areaCode', label='Area Code', required=True,
                validation=ComponentValidation(pattern=r'^\d{3}$'),
            ),
            GranularComponent(
                id='exchange', label='Exchange', required=True,
                validation=ComponentValidation(pattern=r'^\d{3}$'),
            ),
            GranularComponent(
                id='number', label='Number', required=True,
                validation=ComponentValidation(pattern=r'^\d{4}$'),
            ),
        ),
    ),
    'emailAddress': FieldComposition(
        field_name='Email',
        field_type='email',
        display_format='{username}@{domain}',
        input_separator='@',
        display_separator='@',
        components=(
            GranularComponent(
                id='username', label='Username', required=True, default_shared=True,
                validation=ComponentValidation(min_length=1, max_length=64),
            ),
            GranularComponent(
                id='domain', label='Domain', required=True, default_shared=False,
                validation=ComponentValidation(min_length=1, max_length=253),
            ),
        ),
    ),
}

_COMPOSITIONS_BY_TYPE = {
    composition.field_type: composition
    for composition in STANDARD_FIELD_COMPOSITIONS.values()
}

# "123 Main St, Springfield, CA 90210" and "123 Main St, Springfield CA 90210"
ADDRESS_PATTERNS = (
    re.compile(r'^(\d+)\s+([^,]+),\s*([^,]+),?\s*([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$'),
    re.compile(r'^(\d+)\s+([^,]+),\s*([^,]+)\s+([A-Z]{2})\s+(\d{5}(?:-\d{4})?)$'),
)


def get_composition(field_type: str) -> Optional[FieldComposition]:
    """Return the standard composition for a field type, or None."""
    return _COMPOSITIONS_BY_TYPE.get(field_type)


def parse_field(field_type: str, value: str) -> Dict[str, str]:
    """Parse a raw value using the standard composition for ``field_type``."""
    composition = get_composition(field_type)
    if composition is None:
        return {}
    return parse_composite_field(value, composition)


def parse_composite_field(value: str, composition: FieldComposition) -> Dict[str, str]:
    """
    Parse a composite field value into granular components.

    Args:
        value: Stored field value
        composition: Composition describing the field

    Returns:
        Mapping of component id to value; empty when nothing was recognised
    """
    if not value:
        return {}

    parsers = {
        'name': _parse_name,
        'address': _parse_address,
        'phone': _parse_phone,
        'email': _parse_email,
    }
    parser = parsers.get(composition.field_type)
    if parser is None:
        return _parse_generic(value, composition)
    return parser(value)


def _parse_name(value: str) -> Dict[str, str]:
    parts = value.split()
    result = {}

    if len(parts) == 1:
        result['firstName'] = parts[0]
    elif len(parts) == 2:
        result['firstName'] = parts[0]
        result['lastName'] = parts[1]
    elif len(parts) >= 3:
        result['firstName'] = parts[0]
        result['middleName'] = ' '.join(parts[1:-1])
        result['lastName'] = parts[-1]

    return result


def _parse_address(value: str) -> Dict[str, str]:
    for pattern in ADDRESS_PATTERNS:
        match = pattern.match(value.strip())
        if match:
            street_number, street_name, city, state, zip_code = match.groups()
            return {
                'streetNumber': street_number,
                'streetName': street_name.strip(),
                'city': city.strip(),
                'state': state.strip(),
                'zip': zip_code.strip(),
            }
    return {}


def _parse_phone(value: str) -> Dict[str, str]:
    digits = re.sub(r'[^0-9]', '', value)
    if len(digits) != 10:
        return {}
    return {
        'areaCode': digits[0:3],
        'exchange': digits[3:6],
        'number': digits[6:10],
    }


def _parse_email(value: str) -> Dict[str, str]:
    parts = value.strip().split('@')
    if len(parts) != 2:
        return {}
    return {'username': parts[0], 'domain': parts[1]}


def _parse_generic(value: str, composition: FieldComposition) -> Dict[str, str]:
    parts = value.split(composition.input_separator or ' ')
    result = {}
    for index, component in enumerate(composition.components):
        if index < len(parts) and parts[index]:
            result[component.id] = parts[index].strip()
    return result


def compose_display_value(components: Dict[str, str], composition: FieldComposition) -> str:
    """
    Compose granular components back into a display string.

    Missing components are substituted with an empty string; the leftover
    whitespace and punctuation is cleaned up afterwards.
    """
    display = composition.display_format
    for component in composition.components:
        display = display.replace('{%s}' % component.id, components.get(component.id) or '')

    display = re.sub(r'\s+', ' ', display)
    display = re.sub(r',\s*,', ',', display)
    display = re.sub(r'\(\s*\)', '', display)
    display = re.sub(r'\s+,', ',', display)
    return display.strip(' ,-@')


def get_default_sharing_config(composition: FieldComposition) -> Dict[str, bool]:
    """Map each component id to whether it is shared by default."""
    return {component.id: component.default_shared for component in composition.components}


def validate_components(components: Dict[str, str], composition: FieldComposition) -> Dict[str, str]:
    """
    Check component values against the composition's rules.

    Returns:
        Mapping of component id to error message; empty when valid
    """
    errors = {}
    for component in composition.components:
        value = components.get(component.id) or ''
        rules = component.validation

        if not value:
            if component.required:
                errors[component.id] = f"{component.label} is required"
            continue

        if rules.pattern and not re.search(rules.pattern, value):
            errors[component.id] = f"{component.label} has an invalid format"
        elif rules.min_length is not None and len(value) < rules.min_length:
            errors[component.id] = f"{component.label} must be at least {rules.min_length} characters"
        elif rules.max_length is not None and len(value) > rules.max_length:
            errors[component.id] = f"{component.label} must be at most {rules.max_length} characters"

    return errors
