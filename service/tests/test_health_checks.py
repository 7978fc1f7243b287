import health_checks
from health_checks import check_shiprocket_health, check_shopify_health, run_all_health_checks


class FakeHealthTarget:
    def __init__(self, result=None, error=None) -> None:
        self._result = result
        self._error = error

    def check_health(self):
        if self._error:
            raise self._error
        return self._result


def test_unconfigured_sources_report_not_configured():
    assert check_shopify_health() == {"status": False, "message": "Not configured"}
    assert check_shiprocket_health() == {"status": False, "message": "Not configured"}


def test_run_all_health_checks_all_healthy():
    ok = {"status": True, "message": "Connected"}

    result = run_all_health_checks(shopify=FakeHealthTarget(ok), shiprocket=FakeHealthTarget(ok), store=FakeHealthTarget(ok))

    assert result["allHealthy"] is True
    assert result["shopify"] == ok
    assert result["workbook"] == ok
    assert result["timestamp"].endswith("Z")


def test_run_all_health_checks_reports_failures():
    """A check that raises is reported unhealthy without hiding the other results."""
    ok = {"status": True, "message": "Connected"}

    result = run_all_health_checks(
        shopify=FakeHealthTarget(ok),
        shiprocket=FakeHealthTarget(error=RuntimeError("boom")),
        store=FakeHealthTarget({"status": False, "message": "Permission denied"}),
    )

    assert result["allHealthy"] is False
    assert result["shopify"] == ok
    assert result["shiprocket"] == {"status": False, "message": "boom"}
    assert result["workbook"]["message"] == "Permission denied"


def test_workbook_health_defaults_to_configured_path(monkeypatch, tmp_path):
    monkeypatch.setattr(health_checks, "WorkbookSheetStore", lambda: FakeHealthTarget({"status": True, "message": "Connected"}))

    assert health_checks.check_workbook_health() == {"status": True, "message": "Connected"}
