from io import StringIO
from logging import DEBUG, INFO, WARN, Formatter, StreamHandler

import pytest

import groupframe as gf
from groupframe import logger
from groupframe.logger import GroupFrameLogger, LogLevel, getGroupFrameLogger, loggers


@pytest.fixture
def captured():
    """Collect the messages of the package's module loggers."""
    stream = StringIO()
    handler = StreamHandler(stream)
    handler.setFormatter(Formatter(GroupFrameLogger.LOG_FORMAT))
    names = ["GroupedDataFrame", "Apply", "Reductions"]
    for name in names:
        loggers[name].addHandler(handler)
    yield stream
    for name in names:
        loggers[name].removeHandler(handler)


class TestLogger:
    def test_logger_docstrings(self):
        import doctest

        result = doctest.testmod(logger, optionflags=doctest.ELLIPSIS | doctest.NORMALIZE_WHITESPACE)
        assert result.failed == 0, f"Doctest failed: {result.failed} failures"

    def test_log_level(self):
        assert "DEBUG" == LogLevel.DEBUG.value
        assert "INFO" == LogLevel.INFO.value
        assert "WARN" == LogLevel.WARN.value
        assert "CRITICAL" == LogLevel.CRITICAL.value
        assert "ERROR" == LogLevel.ERROR.value

        assert LogLevel.DEBUG == LogLevel("DEBUG")
        assert LogLevel.ERROR == LogLevel("ERROR")

    def test_console_handler(self, capsys):
        log = getGroupFrameLogger(name="ConsoleLogger", logLevel=LogLevel.INFO)
        assert DEBUG == log.level
        assert "ConsoleLogger" == log.name
        assert log.handlers == [log.handler]
        assert INFO == log.handler.level

        log.debug("hidden message")
        log.info("shown message")
        err = capsys.readouterr().err
        assert "hidden message" not in err
        assert "[ConsoleLogger] Line" in err
        assert "INFO: shown message" in err

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("GROUPFRAME_LOG_LEVEL", "warn")
        assert WARN == getGroupFrameLogger(name="EnvLogger").handler.level
        assert DEBUG == getGroupFrameLogger(name="EnvLogger", logLevel=LogLevel.DEBUG).handler.level

        monkeypatch.setenv("GROUPFRAME_LOG_LEVEL", "LOUD")
        with pytest.raises(ValueError):
            getGroupFrameLogger(name="EnvLogger")

    def test_registry(self):
        first = getGroupFrameLogger(name="RegisteredLogger")
        assert loggers["RegisteredLogger"] is first
        second = getGroupFrameLogger(name="RegisteredLogger")
        assert loggers["RegisteredLogger"] is second
        for name in ("GroupedDataFrame", "GroupKeys", "Apply", "Reductions"):
            assert isinstance(loggers[name], GroupFrameLogger)

    def test_change_log_level(self):
        log = getGroupFrameLogger(name="UpdateLogger", logLevel=LogLevel.INFO)
        log.changeLogLevel(LogLevel.WARN)
        assert WARN == log.handler.level
        log.enableVerbose()
        assert DEBUG == log.handler.level
        log.disableVerbose()
        assert INFO == log.handler.level
        log.disableVerbose(LogLevel.WARN)
        assert WARN == log.handler.level

    def test_enable_disable_verbose(self):
        logger_one = getGroupFrameLogger(name="logger_one", logLevel=LogLevel.INFO)
        logger_two = getGroupFrameLogger(name="logger_two", logLevel=LogLevel.INFO)

        gf.enableVerbose()
        assert DEBUG == logger_one.handler.level
        assert DEBUG == logger_two.handler.level
        assert DEBUG == loggers["GroupedDataFrame"].handler.level
        gf.disableVerbose()
        assert INFO == logger_one.handler.level
        assert INFO == loggers["GroupedDataFrame"].handler.level
        gf.disableVerbose(LogLevel.WARN)
        assert WARN == logger_two.handler.level
        gf.disableVerbose()

    def test_engine_messages(self, captured):
        df = gf.DataFrame({"k": [2, 1, 2], "v": [1, 2, 3]})
        gd = gf.groupby(df, "k", sort=True)
        gd.idx
        gf.combine(gd, lambda sdf: 1 if sdf["k"][0] == 1 else 0.5)
        gf.combine(gd, ("v", gf.sum))

        out = captured.getvalue()
        assert "[GroupedDataFrame]" in out
        assert "grouped 3 rows into 2 groups by hashing" in out
        assert "sorted 2 groups" in out
        assert "computed indices of 2 groups" in out
        assert "widening column 'x1' from int64 to float64 at group 1" in out
        assert "computing 'v_sum' with the grouped Reduce fast path" in out
        assert "[Reductions] Line" in out
        assert "sum of 3 int64 values into 2 groups with ufunc.at" in out

    def test_error_handling(self):
        log = getGroupFrameLogger(name="VerboseLogger", logLevel=LogLevel("INFO"))
        with pytest.raises(TypeError):
            log.disableVerbose(logLevel="INFO")

        with pytest.raises(TypeError):
            log.changeLogLevel("WARN")

        with pytest.raises(TypeError):
            gf.disableVerbose("INFO")

        with pytest.raises(TypeError):
            GroupFrameLogger(name=3)
