"""Unit tests for settings loading."""

from sopforge.core.config import DatabaseSettings, LLMSettings, PipelineSettings, Settings, find_env_file


def test_pipeline_defaults(monkeypatch):
    for name in ("AUDIT_MAX_STEPS", "STAGE_TIMEOUT_SECONDS", "PROMPT_WORKERS",
                 "REVIEW_PASS_THRESHOLD", "REVIEW_REVISION_THRESHOLD"):
        monkeypatch.delenv(name, raising=False)

    pipeline = PipelineSettings(_env_file=None)

    assert pipeline.audit_max_steps is None
    assert pipeline.stage_timeout_seconds is None
    assert pipeline.review_pass_threshold == 85
    assert pipeline.review_revision_threshold == 70
    assert pipeline.working_days_per_month == 21


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("AUDIT_MAX_STEPS", "3")
    monkeypatch.setenv("PROMPT_WORKERS", "8")
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("LLM_PROVIDER", "openai")

    assert PipelineSettings().audit_max_steps == 3
    assert PipelineSettings().prompt_workers == 8
    assert DatabaseSettings().url == "sqlite+aiosqlite:///:memory:"
    assert LLMSettings().provider == "openai"


def test_llm_defaults_do_not_loop(monkeypatch):
    monkeypatch.delenv("LLM_MAX_RETRIES", raising=False)
    assert LLMSettings(_env_file=None).max_retries == 1


def test_settings_shortcuts():
    app_settings = Settings(
        db=DatabaseSettings(DATABASE_URL="sqlite+aiosqlite:///./x.db"),
        pipeline=PipelineSettings(AUDIT_MAX_STEPS=2, STAGE_TIMEOUT_SECONDS=5),
    )

    assert app_settings.database_url == "sqlite+aiosqlite:///./x.db"
    assert app_settings.audit_max_steps == 2
    assert app_settings.stage_timeout_seconds == 5
    assert app_settings.llm_provider == app_settings.llm.provider


def test_env_file_override(monkeypatch, tmp_path):
    monkeypatch.setenv("SOPFORGE_ENV_FILE", str(tmp_path / "custom.env"))

    assert find_env_file() == tmp_path / "custom.env"


def test_env_file_in_working_directory(monkeypatch, tmp_path):
    monkeypatch.delenv("SOPFORGE_ENV_FILE", raising=False)
    (tmp_path / ".env").write_text("LOG_LEVEL=DEBUG\n")
    monkeypatch.chdir(tmp_path)

    assert find_env_file() == tmp_path / ".env"
