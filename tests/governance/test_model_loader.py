"""
tests/governance/test_model_loader.py - governance/model.py 테스트
"""

from pathlib import Path

import pytest

from core.exceptions import ConfigError
from governance.model import ENV_CONFIG, load_model, parse_model, resolve_config_path

EXAMPLE_FILE = Path(__file__).resolve().parent.parent.parent / "governance.example.yaml"


class TestLoadModel:
    """load_model 테스트"""

    def test_example_file(self):
        """저장소의 예시 모델 로드"""
        model = load_model(EXAMPLE_FILE)

        assert model.region == "ap-northeast-2"
        assert model.vault_names() == ["vault-a"]
        assert model.plan_names() == ["daily_two_weeks", "weekly_quarter"]
        assert [s.name for s in model.selections] == ["sel-1", "sel-weekly"]
        assert model.extra_denied_actions == ["backup:UpdateRecoveryPointLifecycle"]
        assert model.vaults[0].tags == {"team": "platform"}
        assert model.source == str(EXAMPLE_FILE)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_model(tmp_path / "nope.yaml")

    def test_yaml_syntax_error(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("vaults: [unclosed", encoding="utf-8")

        with pytest.raises(ConfigError) as exc_info:
            load_model(path)
        assert exc_info.value.cause is not None

    def test_empty_file(self, tmp_path):
        """빈 파일은 빈 모델"""
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")

        model = load_model(path)
        assert model.vaults == [] and model.plans == [] and model.selections == []

    def test_env_path(self, tmp_path, monkeypatch):
        path = tmp_path / "env.yaml"
        monkeypatch.setenv(ENV_CONFIG, str(path))
        assert resolve_config_path() == path
        assert resolve_config_path("explicit.yaml") == Path("explicit.yaml")


class TestParseModel:
    """parse_model 구조 검증 테스트"""

    def test_vault_shorthand(self):
        model = parse_model({"vaults": ["vault-a", {"name": "vault-b"}]})
        assert model.vault_names() == ["vault-a", "vault-b"]

    def test_account_id_as_string(self):
        """YAML 숫자 계정 ID도 문자열로 보관"""
        assert parse_model({"account_id": 123456789012}).account_id == "123456789012"

    @pytest.mark.parametrize(
        "data",
        [
            ["not", "a", "mapping"],
            {"vaults": "vault-a"},
            {"vaults": [{"tags": {}}]},
            {"plans": [{"name": "p", "rules": ["0 3 * * ?"]}]},
            {"selections": [{"name": "s", "plan": "p"}]},
            {"selections": [{"name": "s", "plan": "p", "role": "r", "predicate": {"key": "k"}}]},
            {"protection": {"extra_denied_actions": "backup:X"}},
        ],
    )
    def test_structural_errors(self, data):
        with pytest.raises(ConfigError):
            parse_model(data)

    def test_duplicate_names(self):
        with pytest.raises(ConfigError):
            parse_model({"vaults": ["vault-a", "vault-a"]})
        with pytest.raises(ConfigError):
            parse_model({"plans": [{"name": "p"}, {"name": "p"}]})

    def test_same_selection_name_in_different_plans(self):
        """Selection 이름은 플랜 내에서만 고유"""
        model = parse_model(
            {
                "selections": [
                    {"name": "s", "plan": "p1", "role": "r", "predicate": []},
                    {"name": "s", "plan": "p2", "role": "r", "predicate": []},
                ]
            }
        )
        assert len(model.selections) == 2

    def test_values_not_validated_here(self):
        """값 검증(cron, 보존 기간)은 로더가 아닌 각 컴포넌트에서"""
        model = parse_model({"plans": [{"name": "p", "rules": [{"schedule": "bogus", "retention_days": 0}]}]})
        assert model.plans[0].rules == [{"schedule": "bogus", "retention_days": 0}]
