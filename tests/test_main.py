import pytest

import main
from conftest import EVEN_CORRECT, UNSAFE, FakeRunner, ScriptedGenerator
from task_service import build_service


def test_check_reports_violations(tmp_path, capsys):
    source = tmp_path / "Unsafe.java"
    source.write_text(UNSAFE)

    assert main.main(["check", str(source)]) == 1

    out = capsys.readouterr().out
    assert "Safe: False" in out
    assert "explicit process termination" in out


def test_check_clean_file(tmp_path, capsys):
    source = tmp_path / "Solution.java"
    source.write_text(EVEN_CORRECT)

    assert main.main(["check", str(source)]) == 0
    assert "Safe: True" in capsys.readouterr().out


def test_run_exports_record(tmp_path, monkeypatch, capsys, config):
    def fake_build_service(cfg):
        return build_service(
            config,
            generator=ScriptedGenerator([EVEN_CORRECT]),
            runner=FakeRunner(outputs={"CORRECT": "true\nfalse\n"}),
        )

    monkeypatch.setattr(main, "build_service", fake_build_service)
    output = tmp_path / "task.json"

    code = main.main([
        "run",
        "--goal", "return true if input is even",
        "--test-case", "Input: 2, Output: true",
        "--test-case", "Input: 3, Output: false",
        "--output", str(output),
    ])

    assert code == 0
    assert output.exists()
    out = capsys.readouterr().out
    assert "✅ Iteration 1: PASSED" in out
    assert "Status: COMPLETED" in out


def test_subcommand_is_required():
    with pytest.raises(SystemExit):
        main.main([])
