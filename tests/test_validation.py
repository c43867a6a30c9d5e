import pytest
from orderhub.application.errors import OrderValidationError
from orderhub.application.validation import (
    REQUIRED_FIELDS,
    is_valid_mobile,
    parse_order_ids,
    require_fields,
    validate_mobiles,
)
from conftest import order_payload

@pytest.mark.parametrize("mobile", ["9876543210", "919876543210", "+91 98765 43210", "9109876543210", "6000000000"])
def test_valid_mobiles(mobile):
    assert is_valid_mobile(mobile)

@pytest.mark.parametrize("mobile", ["5876543210", "12345", "98765432101", "", None, "abcdefghij", "915876543210"])
def test_invalid_mobiles(mobile):
    assert not is_valid_mobile(mobile)

def test_required_fields_reported_in_order():
    payload = order_payload()
    del payload["city"]
    del payload["pincode"]
    with pytest.raises(OrderValidationError) as exc:
        require_fields(payload)
    assert exc.value.field == "city"
    assert exc.value.reason == "missing field"
    assert exc.value.status_code == 400

@pytest.mark.parametrize("value", [None, "", "   ", 0, 0.0])
def test_blank_or_zero_counts_as_missing(value):
    with pytest.raises(OrderValidationError) as exc:
        require_fields(order_payload(package_value=value))
    assert exc.value.field == "package_value"

def test_complete_payload_passes():
    require_fields(order_payload())
    assert len(REQUIRED_FIELDS) == 12

def test_reseller_mobile_checked_only_when_present():
    validate_mobiles("9876543210", None)
    validate_mobiles("9876543210", "")
    with pytest.raises(OrderValidationError) as exc:
        validate_mobiles("9876543210", "12345")
    assert exc.value.reason == "invalid reseller mobile"

def test_invalid_mobile_reason():
    with pytest.raises(OrderValidationError) as exc:
        validate_mobiles("12345")
    assert exc.value.reason == "invalid mobile"

def test_parse_order_ids_accepts_ints_and_numeric_strings():
    assert parse_order_ids([3, "4", 3]) == [3, 4]

@pytest.mark.parametrize("ids", [[], None, "12", [0], [-1], ["abc"], [1, "x"], [True], [1.5]])
def test_parse_order_ids_rejects_whole_batch(ids):
    with pytest.raises(OrderValidationError) as exc:
        parse_order_ids(ids)
    assert exc.value.reason == "invalid order ids"
