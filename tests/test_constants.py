"""
测试 fetchflex.constants 模块

测试默认配置的取值
"""

import pytest

from fetchflex import constants


class TestDefaults:
    """测试默认配置"""

    @pytest.mark.unit
    def test_default_values(self):
        """UT-CONST-001: 默认超时、重试次数和间隔"""
        assert constants.DEFAULT_TIMEOUT == 10000
        assert constants.DEFAULT_RETRIES == 3
        assert constants.DEFAULT_RETRY_DELAY == 1000
        assert constants.DEFAULT_METHOD == "GET"

    @pytest.mark.unit
    def test_retry_status_codes(self):
        """UT-CONST-002: 默认重试状态码"""
        assert constants.RETRY_STATUS_CODES == frozenset({500, 502, 503, 504})

    @pytest.mark.unit
    def test_supported_methods(self):
        """UT-CONST-003: 支持的 HTTP 方法"""
        assert constants.SUPPORTED_METHODS == {"GET", "POST", "PUT", "DELETE", "PATCH"}

    @pytest.mark.unit
    def test_retry_ceiling_above_default(self):
        """UT-CONST-004: 重试上限不小于默认重试次数"""
        assert constants.MAX_RETRIES_CEILING >= constants.DEFAULT_RETRIES

    @pytest.mark.unit
    def test_bodyless_status_codes(self):
        """UT-CONST-005: 无响应体状态码"""
        assert 204 in constants.BODYLESS_STATUS_CODES
        assert 200 not in constants.BODYLESS_STATUS_CODES
