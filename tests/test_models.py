"""Tests for the ORM model layer."""
import os
import subprocess
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[1] / "src"


class TestModelImports:
    def test_import_is_free_of_sqlalchemy_deprecations(self):
        """Models load cleanly under SQLAlchemy 2 with deprecations as errors."""
        code = (
            "import warnings\n"
            "from sqlalchemy import exc\n"
            "warnings.simplefilter('error', exc.SADeprecationWarning)\n"
            "import release_core.models\n"
        )
        pythonpath = os.pathsep.join(p for p in (str(SRC), os.environ.get("PYTHONPATH")) if p)
        env = dict(os.environ, PYTHONPATH=pythonpath)

        result = subprocess.run([sys.executable, "-c", code], env=env, capture_output=True, text=True)

        assert result.returncode == 0, result.stderr
