from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Logging
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"
    log_to_file: bool = True

    # Search providers (an API key being present enables the provider)
    enable_duckduckgo: bool = True
    bing_api_key: str = ""
    google_api_key: str = ""
    google_cx: str = ""
    brave_api_key: str = ""
    duckduckgo_min_interval: float = 1.0  # seconds between requests
    bing_min_interval: float = 0.5
    google_min_interval: float = 0.5
    brave_min_interval: float = 1.0
    search_timeout_seconds: float = 10.0
    search_max_results: int = 10

    # Scraping
    scraping_timeout: int = 10000  # ms, approved-finding scrapes
    cycle_scrape_timeout: int = 5000  # ms, scrapes inside a research cycle
    scrape_max_content_chars: int = 10000
    scrape_min_content_chars: int = 100
    scrape_min_interval: float = 1.0
    scrape_user_agent: str = (
        "Mozilla/5.0 (compatible; RealWorldOpera/1.0; +http://realworldopera.app/)"
    )
    source_full_text_max_chars: int = 50000

    # Review / auto-scraping
    enable_auto_scraping: bool = True
    auto_scrape_types: list[str] = ["entity", "location", "organization"]
    max_entities_per_page: int = 10
    max_keywords_per_page: int = 20
    scrape_job_priority: int = 5

    # Geocoding
    geocoder_base_url: str = "https://nominatim.openstreetmap.org"
    geocoder_user_agent: str = "RealWorldOpera/1.0 (research tool)"
    geocoder_timeout_seconds: float = 10.0
    geocode_delay_seconds: float = 0.5

    # NLP
    spacy_model: str = "en_core_web_sm"

    # Query generation
    query_strategy: str = "pairwise"  # pairwise | smart
    max_queries: int = 20
    max_search_queries: int = 50

    # Scoring
    match_threshold: float = 0.7
    min_review_confidence: float = 0.5
    default_source_credibility: float = 5.0  # 0-10 scale

    # Jobs
    job_max_attempts: int = 3
    job_delay_seconds: float = 0.05

    # Cycle
    context_snippet_length: int = 150

    # App
    cors_origins: str = "http://localhost:3000"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
