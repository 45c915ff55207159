import signal

import pytest

import pufferpanel_setup as setup


@pytest.fixture
def offline_main(monkeypatch):
    """Keeps main() away from /var/log, the terminal and real signal handlers."""
    registered = []
    monkeypatch.setattr(setup, "setup_logging", lambda *args, **kwargs: None)
    monkeypatch.setattr(setup, "build_default_context", lambda config=None: "ctx")
    monkeypatch.setattr(setup.signal, "signal", lambda sig, handler: registered.append(sig))

    def use_installer(behaviour):
        monkeypatch.setattr(setup, "run_installer", behaviour)

    use_installer.registered = registered
    return use_installer


def raising(exc):
    def run(ctx):
        raise exc

    return run


def test_main_returns_installer_exit_code(offline_main):
    seen = []
    offline_main(lambda ctx: seen.append(ctx) or 0)

    assert setup.main() == 0
    assert seen == ["ctx"]
    assert offline_main.registered == [signal.SIGTERM, signal.SIGHUP]


def test_main_propagates_step_failure(offline_main):
    offline_main(lambda ctx: 1)

    assert setup.main() == 1


def test_main_keyboard_interrupt_exits_130(offline_main, capsys):
    offline_main(raising(KeyboardInterrupt()))

    assert setup.main() == 130
    assert "Installation interrupted by user" in capsys.readouterr().out


def test_main_closed_input_exits_1(offline_main, capsys):
    offline_main(raising(EOFError()))

    assert setup.main() == 1
    assert "Input closed" in capsys.readouterr().out


def test_main_unexpected_error_prints_traceback(offline_main, capsys):
    offline_main(raising(RuntimeError("boom")))

    assert setup.main() == 1
    out = capsys.readouterr().out
    assert "Unexpected error: boom" in out
    assert "Traceback" in out


@pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGHUP])
def test_signal_handler_exits_with_128_plus_signal(sig, capsys):
    with pytest.raises(SystemExit) as exc_info:
        setup.signal_handler(sig, None)

    assert exc_info.value.code == 128 + sig
    assert f"Process terminated by {sig.name}" in capsys.readouterr().out
