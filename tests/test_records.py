from exclog.errors import ClientReportedError
from exclog.telemetry import PROVENANCE_KEY, ExceptionRecord, SeverityLevel


def test_severity_from_any():
    assert SeverityLevel.from_any(SeverityLevel.Warning) is SeverityLevel.Warning
    assert SeverityLevel.from_any(4) is SeverityLevel.Critical
    assert SeverityLevel.from_any("error") is SeverityLevel.Error
    assert SeverityLevel.from_any(None) is SeverityLevel.Information
    assert SeverityLevel.from_any(99) is SeverityLevel.Information
    assert SeverityLevel.from_any(True) is SeverityLevel.Information


def test_with_properties_returns_new_record():
    rec = ExceptionRecord(error=ValueError("x"), properties={"a": 1})
    marked = rec.with_properties(**{PROVENANCE_KEY: "Yes"})

    assert rec.properties == {"a": 1}
    assert marked.properties == {"a": 1, PROVENANCE_KEY: "Yes"}
    assert marked.error is rec.error
    assert marked.is_buffered() and not rec.is_buffered()


def test_to_dict_includes_stack_when_raised():
    try:
        raise KeyError("missing")
    except KeyError as e:
        rec = ExceptionRecord(error=e, severity_level=SeverityLevel.Error)

    d = rec.to_dict()
    assert d["exception"]["type"] == "KeyError"
    assert "missing" in d["exception"]["message"]
    assert "test_records.py" in d["exception"]["stack"]
    assert d["severityLevel"] == 3
    assert d["properties"] == {}


def test_to_dict_omits_stack_for_unraised_error():
    d = ExceptionRecord(error=RuntimeError("never raised")).to_dict()
    assert "stack" not in d["exception"]
    assert d["severityLevel"] == 1


def test_to_dict_prefers_reported_type_and_stack():
    err = ClientReportedError("x is undefined", type_name="TypeError", stack="at foo (app.js:1:2)")
    d = ExceptionRecord(error=err).to_dict()
    assert d["exception"]["type"] == "TypeError"
    assert d["exception"]["stack"] == "at foo (app.js:1:2)"
    assert d["exception"]["message"] == "x is undefined"
