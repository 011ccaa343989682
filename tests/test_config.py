"""
Configuration and storage-backend selection tests.
"""

import os
from unittest.mock import MagicMock, patch

from redis.exceptions import ConnectionError as RedisConnectionError

from jobs.store import get_key_value_store, get_redis_client
from pipeline.config import PipelineConfig, RetryPolicy
from pipeline.drafts import RedisKeyValueStore, SqliteKeyValueStore


class TestPipelineConfig:
    @patch.dict(os.environ, {
        "SUBMISSION_BACKEND": "Legacy",
        "LEGACY_ENDPOINT_URL": "https://fvu.example/rfs.php",
        "API_TIMEOUT_SECONDS": "10",
        "RETRY_MAX_ATTEMPTS": "5",
        "RETRY_BASE_DELAY_SECONDS": "0.5",
        "LOCKER_MAX": "40",
    })
    def test_from_env(self):
        config = PipelineConfig.from_env()
        assert config.backend == "legacy"
        assert config.legacy_endpoint_url == "https://fvu.example/rfs.php"
        assert config.request_timeout_seconds == 10.0
        assert config.retry == RetryPolicy(max_attempts=5, base_delay_seconds=0.5)
        assert config.locker_max == 40

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        config = PipelineConfig.from_env()
        assert config.backend == "supabase"
        assert config.supabase_url is None
        assert config.draft_expiry_days == 7

    def test_backoff_doubles(self):
        policy = RetryPolicy(base_delay_seconds=1.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 4.0]


class TestKeyValueStoreSelection:
    @patch.dict(os.environ, {}, clear=True)
    def test_sqlite_without_redis_url(self, tmp_path):
        store = get_key_value_store(db_path=str(tmp_path / "d.db"))
        assert isinstance(store, SqliteKeyValueStore)
        store.close()

    @patch("jobs.store.get_redis_client")
    def test_redis_when_url_given(self, mock_get_client):
        mock_get_client.return_value = MagicMock()
        store = get_key_value_store(redis_url="redis://cache:6379/1")
        assert isinstance(store, RedisKeyValueStore)
        mock_get_client.assert_called_once_with("redis://cache:6379/1")

    @patch("jobs.store.get_redis_client")
    def test_falls_back_when_redis_down(self, mock_get_client, tmp_path):
        mock_get_client.return_value.ping.side_effect = RedisConnectionError("refused")
        store = get_key_value_store(redis_url="redis://cache:6379/1", db_path=str(tmp_path / "d.db"))
        assert isinstance(store, SqliteKeyValueStore)
        store.close()

    @patch("jobs.store.Redis")
    def test_redis_url_parsing(self, mock_redis):
        get_redis_client("redis://:s3cret@cache:6380/2")
        mock_redis.assert_called_once_with(host="cache", port=6380, db=2, password="s3cret", decode_responses=True)
