from core.config import Settings, get_settings

# Retry wait between search attempts in FallbackResearchInvoker
SEARCH_RETRY_WAIT_SECONDS = 1.0


def test_pathway_time_box_leaves_room_for_generative_tier():
    settings = Settings()
    search_budget = settings.search_timeout_seconds * settings.search_max_attempts + SEARCH_RETRY_WAIT_SECONDS

    assert settings.pathway_timeout_seconds >= settings.research_timeout_seconds
    assert settings.pathway_timeout_seconds > search_budget + 10


def test_research_sub_deadline_fits_inside_global_deadline():
    settings = Settings()

    assert settings.research_timeout_seconds < settings.orchestration_timeout_seconds
    assert settings.search_timeout_seconds < settings.research_timeout_seconds


def test_get_settings_reads_environment(monkeypatch):
    monkeypatch.setenv("PERPLEXITY_API_KEY", "pplx-env")
    monkeypatch.setenv("PATHWAY_TIMEOUT_SECONDS", "60")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")
    get_settings.cache_clear()
    try:
        settings = get_settings()
    finally:
        get_settings.cache_clear()

    assert settings.search_enabled
    assert settings.pathway_timeout_seconds == 60.0
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
