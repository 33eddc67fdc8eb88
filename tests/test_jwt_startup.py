"""
tests/test_jwt_startup — Admin token secret checks
===================================================
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from ripple.api.deps import _load_jwt_secret


class TestJWTSecretValidation:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_or_blank_secret_refuses_start(self, value):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            if value is not None:
                os.environ["JWT_SECRET"] = value
            with pytest.raises(RuntimeError, match="not set"):
                _load_jwt_secret()

    def test_env_example_placeholder_refused(self):
        with patch.dict(os.environ, {"JWT_SECRET": "ripple-dev-secret-change-me"}):
            with pytest.raises(RuntimeError, match="weak default"):
                _load_jwt_secret()

    def test_short_secret_refused(self):
        with patch.dict(os.environ, {"JWT_SECRET": "x" * 31}):
            with pytest.raises(RuntimeError, match="31 < 32"):
                _load_jwt_secret()

    def test_surrounding_whitespace_is_stripped(self):
        with patch.dict(os.environ, {"JWT_SECRET": "  " + "k" * 40 + "\n"}):
            assert _load_jwt_secret() == "k" * 40
