"""云端生成式 API 适配器（generateContent 协议）。

- URL: descriptor.endpoint_template 格式化 {model} / {api_key} 后的地址
- 请求体: {contents:[{parts:[{text}]}], generationConfig:{temperature, topK, topP, maxOutputTokens}}
- 成功响应: {candidates:[{content:{parts:[{text}]}}]}
- 错误响应: {error:{message}}

每次调用都是无服务端状态的单轮请求。
"""

from typing import Any, Dict, List, Optional

import httpx

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ApiError, NetworkError
from assistant_core.domain.models import CloudGenerativeDescriptor, Exchange

NETWORK_ERROR_MESSAGE = "Network error: Unable to reach the API. Please check your internet connection."
FORMAT_ERROR_MESSAGE = "Unexpected response format from API"


class CloudGenerativeClient:
    """云端生成式 Provider 客户端实现。"""

    def __init__(self, descriptor: CloudGenerativeDescriptor, cfg=settings):
        self.descriptor = descriptor
        self.history: List[Exchange] = []
        self._settings = cfg

    @property
    def name(self) -> str:
        return self.descriptor.id

    async def send_prompt(self, text: str) -> str:
        payload = self._build_payload(text)
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(
                    self.descriptor.endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.RequestError as e:
            # DNS 失败、连接超时等
            raise NetworkError(
                code="NETWORK_ERROR",
                message=NETWORK_ERROR_MESSAGE,
                provider_id=self.descriptor.id,
                detail=str(e),
            )
        data = self._decode(resp)
        if not 200 <= resp.status_code < 300:
            raise ApiError(
                code="API_ERROR",
                message=self._error_message(data, resp.status_code),
                http_status=resp.status_code,
                provider_id=self.descriptor.id,
            )
        reply = self._parse_response(data)
        self.history.append(Exchange(prompt=text, reply=reply))
        return reply

    # ---- 辅助方法 ----

    def _build_payload(self, text: str) -> Dict[str, Any]:
        sampling = self.descriptor.sampling
        generation_config: Dict[str, Any] = {
            "temperature": sampling.temperature,
            "topP": sampling.top_p,
            "maxOutputTokens": sampling.max_output_tokens,
        }
        if sampling.top_k is not None:
            generation_config["topK"] = sampling.top_k
        return {
            "contents": [{"parts": [{"text": text}]}],
            "generationConfig": generation_config,
        }

    @staticmethod
    def _decode(resp) -> Optional[Any]:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(data: Any, status: int) -> str:
        error = data.get("error") if isinstance(data, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return f"API error: {status}"

    def _parse_response(self, data: Any) -> str:
        """取第一个候选回答的全部文本片段。"""

        candidates = data.get("candidates") if isinstance(data, dict) else None
        first = candidates[0] if isinstance(candidates, list) and candidates else None
        content = first.get("content") if isinstance(first, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        texts = [p["text"] for p in parts or [] if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise ApiError(
                code="MALFORMED_RESPONSE",
                message=FORMAT_ERROR_MESSAGE,
                http_status=502,
                provider_id=self.descriptor.id,
            )
        return "".join(texts)
