import pytest

from souin.errors import CanceledRequestContextError


def test_message():
    assert str(CanceledRequestContextError()) == "The user canceled the request"


def test_raised_and_caught_as_exception():
    error = CanceledRequestContextError()
    message = str(error)
    with pytest.raises(Exception) as excinfo:
        raise error
    assert excinfo.value is error
    assert message == "The user canceled the request"
    assert str(excinfo.value) == message


def test_custom_message():
    assert str(CanceledRequestContextError("stopped")) == "stopped"