import dataclasses

import pytest

from tcpbanner import ConfigurationError, ScanRequest, TCPBannerError, TCPScan
from tcpbanner.scan import ScanState


def test_defaults():
    request = ScanRequest("192.0.2.1", 22)
    assert request.banner_length == 512
    assert request.timeout == 2.0


def test_request_is_immutable():
    request = ScanRequest("192.0.2.1", 22)
    with pytest.raises(dataclasses.FrozenInstanceError):
        request.port = 23


@pytest.mark.parametrize("host", ["", None])
def test_missing_host(host):
    with pytest.raises(ConfigurationError, match="No host provided"):
        ScanRequest(host, 22)


def test_missing_port():
    with pytest.raises(ConfigurationError, match="No port provided"):
        ScanRequest("192.0.2.1", None)


@pytest.mark.parametrize("port", [0, -1, 65536, "80", 22.0, True])
def test_invalid_port(port):
    with pytest.raises(ConfigurationError) as excinfo:
        ScanRequest("192.0.2.1", port)
    assert excinfo.value.get_context("field") == "port"


@pytest.mark.parametrize("port", [1, 65535])
def test_port_bounds_are_inclusive(port):
    assert ScanRequest("192.0.2.1", port).port == port


@pytest.mark.parametrize("banner_length", [0, -5, 1.5])
def test_invalid_banner_length(banner_length):
    with pytest.raises(ConfigurationError):
        ScanRequest("192.0.2.1", 22, banner_length=banner_length)


@pytest.mark.parametrize("timeout", [0, -1, "2", float("nan"), float("inf")])
def test_invalid_timeout(timeout):
    with pytest.raises(ConfigurationError):
        ScanRequest("192.0.2.1", 22, timeout=timeout)


def test_configuration_error_is_value_error_with_context():
    with pytest.raises(ValueError) as excinfo:
        ScanRequest("192.0.2.1", 70000)
    assert isinstance(excinfo.value, TCPBannerError)
    assert "Context: field=port, value=70000" in str(excinfo.value)


def test_engine_validates_at_construction():
    with pytest.raises(ConfigurationError):
        TCPScan("", 22)


def test_engine_from_request():
    request = ScanRequest("192.0.2.1", 25, banner_length=64, timeout=1)
    scan = TCPScan.from_request(request)
    assert scan.request == request
    assert scan.state is ScanState.IDLE
    assert scan.result is None
