from app.utils.response import success_response, error_response


def test_success_response_with_data():
    result = success_response(data={"key": "value"})
    assert result == {"status": "success", "data": {"key": "value"}, "message": None}


def test_success_response_with_message():
    result = success_response(data=None, message="Vehicle entry recorded")
    assert result == {"status": "success", "data": None, "message": "Vehicle entry recorded"}


def test_error_response():
    result = error_response("License plate is required")
    assert result == {"status": "error", "data": None, "message": "License plate is required"}


def test_error_response_with_kind():
    result = error_response("Cannot exit: parking fee is due", data={"kind": "payment_required"})
    assert result == {
        "status": "error",
        "data": {"kind": "payment_required"},
        "message": "Cannot exit: parking fee is due",
    }
