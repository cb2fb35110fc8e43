"""
Unit tests for application settings.
"""

from app.config import Settings


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self, monkeypatch):
        for name in ("PORT", "BASE_URL", "DOWNLOAD_DIRECTORY", "MAX_WORKERS", "HOST_ALIASES", "YTDLP_PROXY"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.port == 9000
        assert settings.base_url == "http://localhost:9000"
        assert settings.download_directory == "download"
        assert settings.host_aliases == {"x.com": "twitter.com"}
        assert settings.ytdlp_path == "yt-dlp"
        assert settings.ffmpeg_path == "ffmpeg"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("PORT", "8080")
        monkeypatch.setenv("BASE_URL", "https://clips.example.com")
        monkeypatch.setenv("HOST_ALIASES", '{"x.com": "twitter.com", "fxtwitter.com": "twitter.com"}')

        settings = Settings(_env_file=None)

        assert settings.port == 8080
        assert settings.base_url == "https://clips.example.com"
        assert settings.host_aliases["fxtwitter.com"] == "twitter.com"

    def test_capacity_is_bounded_by_cpu_count(self, monkeypatch):
        monkeypatch.setattr("app.config.os.cpu_count", lambda: 2)

        assert Settings(_env_file=None, max_workers=8).worker_capacity == 2
        assert Settings(_env_file=None, max_workers=1).worker_capacity == 1
        assert Settings(_env_file=None, max_workers=0).worker_capacity == 1

    def test_unknown_cpu_count(self, monkeypatch):
        monkeypatch.setattr("app.config.os.cpu_count", lambda: None)
        assert Settings(_env_file=None, max_workers=4).worker_capacity == 1

    def test_ytdlp_args_without_proxy(self):
        settings = Settings(_env_file=None, ytdlp_proxy=None)
        assert settings.get_ytdlp_extra_args() == ["--no-playlist", "--no-mtime", "--merge-output-format", "mp4"]

    def test_ytdlp_args_with_proxy(self):
        settings = Settings(_env_file=None, ytdlp_proxy="http://proxy:3128")
        args = settings.get_ytdlp_extra_args()
        assert args[:2] == ["--proxy", "http://proxy:3128"]
