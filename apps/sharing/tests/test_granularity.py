"""
Tests for field parsing and composition.

Pure functions, no database access.
"""

import pytest

from apps.sharing.granularity import (
    STANDARD_FIELD_COMPOSITIONS,
    ComponentValidation,
    FieldComposition,
    GranularComponent,
    compose_display_value,
    get_composition,
    get_default_sharing_config,
    parse_composite_field,
    parse_field,
    validate_components,
)

NAME = STANDARD_FIELD_COMPOSITIONS['fullName']
ADDRESS = STANDARD_FIELD_COMPOSITIONS['fullAddress']
PHONE = STANDARD_FIELD_COMPOSITIONS['phoneNumber']
EMAIL = STANDARD_FIELD_COMPOSITIONS['emailAddress']


class TestNameParsing:

    def test_single_token_is_first_name(self):
        assert parse_composite_field('Cher', NAME) == {'firstName': 'Cher'}

    def test_two_tokens(self):
        assert parse_composite_field('John Smith', NAME) == {
            'firstName': 'John',
            'lastName': 'Smith',
        }

    def test_interior_tokens_become_middle_name(self):
        assert parse_composite_field('John Quincy Adams Smith', NAME) == {
            'firstName': 'John',
            'middleName': 'Quincy Adams',
            'lastName': 'Smith',
        }

    def test_extra_whitespace_is_ignored(self):
        assert parse_composite_field('  John   Smith ', NAME) == {
            'firstName': 'John',
            'lastName': 'Smith',
        }

    def test_compose_without_middle_name(self):
        components = {'firstName': 'John', 'lastName': 'Smith'}
        assert compose_display_value(components, NAME) == 'John Smith'


class TestAddressParsing:

    def test_comma_separated_address(self):
        assert parse_composite_field('123 Main St, Springfield, CA 90210', ADDRESS) == {
            'streetNumber': '123',
            'streetName': 'Main St',
            'city': 'Springfield',
            'state': 'CA',
            'zip': '90210',
        }

    def test_address_without_comma_before_state(self):
        components = parse_composite_field('123 Main St, Springfield CA 90210', ADDRESS)

        assert components['city'] == 'Springfield'
        assert components['state'] == 'CA'
        assert components['zip'] == '90210'

    def test_zip_plus_four(self):
        components = parse_composite_field('9 Elm Rd, Portland, OR 97201-1234', ADDRESS)
        assert components['zip'] == '97201-1234'

    def test_unrecognised_address_is_empty(self):
        assert parse_composite_field('Somewhere over the rainbow', ADDRESS) == {}

    @pytest.mark.parametrize('address', [
        '123 Main St, Springfield, CA 90210',
        '4500 Ocean View Blvd, San Diego, CA 92109-5555',
    ])
    def test_round_trip(self, address):
        components = parse_composite_field(address, ADDRESS)
        assert compose_display_value(components, ADDRESS) == address

    def test_compose_city_and_state_only(self):
        components = {'city': 'Springfield', 'state': 'CA'}
        assert compose_display_value(components, ADDRESS) == 'Springfield, CA'


class TestPhoneParsing:

    @pytest.mark.parametrize('value', [
        '5551234567',
        '(555) 123-4567',
        '555.123.4567',
    ])
    def test_ten_digits(self, value):
        components = parse_composite_field(value, PHONE)

        assert components == {'areaCode': '555', 'exchange': '123', 'number': '4567'}
        assert ''.join(components[k] for k in ('areaCode', 'exchange', 'number')) == '5551234567'

    @pytest.mark.parametrize('value', ['+1 555 123 4567', '123-4567', 'call me'])
    def test_other_lengths_are_empty(self, value):
        assert parse_composite_field(value, PHONE) == {}

    def test_compose_full_number(self):
        components = parse_composite_field('5551234567', PHONE)
        assert compose_display_value(components, PHONE) == '(555) 123-4567'

    def test_compose_area_code_only(self):
        assert compose_display_value({'areaCode': '555'}, PHONE) == '(555)'


class TestEmailParsing:

    def test_username_and_domain(self):
        assert parse_composite_field('john@example.com', EMAIL) == {
            'username': 'john',
            'domain': 'example.com',
        }

    @pytest.mark.parametrize('value', ['not-an-email', 'a@b@c.com'])
    def test_needs_exactly_one_at_sign(self, value):
        assert parse_composite_field(value, EMAIL) == {}

    def test_compose_username_only_drops_at_sign(self):
        assert compose_display_value({'username': 'john'}, EMAIL) == 'john'


class TestGenericParsing:

    def test_split_on_input_separator(self):
        composition = FieldComposition(
            field_name='Date',
            field_type='date',
            display_format='{year}-{month}-{day}',
            input_separator='-',
            components=(
                GranularComponent(id='year', label='Year'),
                GranularComponent(id='month', label='Month'),
                GranularComponent(id='day', label='Day'),
            ),
        )

        assert parse_composite_field('2024-05-17', composition) == {
            'year': '2024',
            'month': '05',
            'day': '17',
        }


class TestParseField:

    def test_resolves_standard_composition(self):
        assert get_composition('phone') is PHONE
        assert parse_field('phone', '555-123-4567')['areaCode'] == '555'

    def test_unknown_field_type(self):
        assert get_composition('favourite-colour') is None
        assert parse_field('favourite-colour', 'blue') == {}

    @pytest.mark.parametrize('field_type', ['name', 'address', 'phone', 'email'])
    def test_empty_value(self, field_type):
        assert parse_field(field_type, '') == {}

    @pytest.mark.parametrize('value', ['@', ',,,', '   ', '()', '\n\t', '1 , , XX 0'])
    def test_never_raises(self, value):
        for composition in STANDARD_FIELD_COMPOSITIONS.values():
            assert isinstance(parse_composite_field(value, composition), dict)


class TestSharingDefaults:

    def test_address_defaults(self):
        assert get_default_sharing_config(ADDRESS) == {
            'streetNumber': False,
            'streetName': False,
            'city': True,
            'state': True,
            'zip': False,
        }


class TestValidateComponents:

    def test_valid_address(self):
        components = parse_composite_field('123 Main St, Springfield, CA 90210', ADDRESS)
        assert validate_components(components, ADDRESS) == {}

    def test_missing_required_and_bad_pattern(self):
        errors = validate_components(
            {'streetNumber': '12a', 'streetName': 'Main St', 'city': 'Springfield', 'state': 'ca'},
            ADDRESS,
        )

        assert errors == {
            'streetNumber': 'Street Number has an invalid format',
            'state': 'State has an invalid format',
            'zip': 'ZIP Code is required',
        }

    def test_length_rules(self):
        composition = FieldComposition(
            field_name='Code',
            field_type='code',
            display_format='{code}',
            components=(
                GranularComponent(
                    id='code', label='Code',
                    validation=ComponentValidation(min_length=3, max_length=5),
                ),
            ),
        )

        assert validate_components({'code': 'ab'}, composition) == {
            'code': 'Code must be at least 3 characters',
        }
        assert validate_components({'code': 'abcdef'}, composition) == {
            'code': 'Code must be at most 5 characters',
        }
        assert validate_components({}, composition) == {}
