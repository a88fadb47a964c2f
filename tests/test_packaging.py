from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def test_declared_readme_ships_with_the_project():
    lines = (ROOT / "pyproject.toml").read_text(encoding="utf-8").splitlines()
    declared = [line.split("=", 1)[1].strip().strip('"') for line in lines if line.startswith("readme")]

    assert declared == ["README.md"]
    assert "jsdeob" in (ROOT / declared[0]).read_text(encoding="utf-8")
