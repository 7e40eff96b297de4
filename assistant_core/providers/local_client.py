"""本地推理服务适配器（OpenAI 兼容 chat/completions 协议）。

- URL: {base_url}/v1/chat/completions
- 认证: 可选，配置了 API_KEY 时发送 Authorization: Bearer <api_key>
- 请求体: model/messages/temperature/top_p/max_tokens/stream=false
- 成功响应: {choices:[{message:{content}}]}

本地服务不可达是最常见的故障，错误信息会提示用户先启动服务。
"""

from typing import Any, Dict, List, Optional

import httpx

from assistant_core.config.settings import settings
from assistant_core.domain.exceptions import ApiError, NetworkError
from assistant_core.domain.models import Exchange, LocalInferenceDescriptor

FORMAT_ERROR_MESSAGE = "Unexpected response format from local inference server"


class LocalInferenceClient:
    """本地推理 Provider 客户端实现。"""

    def __init__(self, descriptor: LocalInferenceDescriptor, cfg=settings):
        self.descriptor = descriptor
        self.history: List[Exchange] = []
        self._settings = cfg

    @property
    def name(self) -> str:
        return self.descriptor.id

    async def send_prompt(self, text: str) -> str:
        payload = self._build_payload(text)
        headers = {"Content-Type": "application/json"}
        if self.descriptor.api_key:
            headers["Authorization"] = f"Bearer {self.descriptor.api_key}"
        try:
            async with httpx.AsyncClient(timeout=self._settings.http_timeout, trust_env=False) as client:
                resp = await client.post(self.descriptor.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise NetworkError(
                code="TIMEOUT",
                message=f"Request to {self.descriptor.display_name} on {self.descriptor.base_url} timed out.",
                provider_id=self.descriptor.id,
                detail=str(e),
            )
        except httpx.RequestError as e:
            raise NetworkError(
                code="CONNECTION_ERROR",
                message=(
                    f"Cannot connect to {self.descriptor.display_name} on {self.descriptor.base_url}. "
                    "Make sure the local inference server is running and the URL is correct."
                ),
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
        return {
            "model": self.descriptor.model_name,
            "messages": [{"role": "user", "content": text}],
            "temperature": sampling.temperature,
            "top_p": sampling.top_p,
            "max_tokens": sampling.max_output_tokens,
            "stream": False,
        }

    @staticmethod
    def _decode(resp) -> Optional[Any]:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(data: Any, status: int) -> str:
        """兼容 {error:{message}}、{error:"..."} 与 {message:"..."} 三种错误格式。"""

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            if data.get("message"):
                return str(data["message"])
        return f"API error: {status}"

    def _parse_response(self, data: Any) -> str:
        choices = data.get("choices") if isinstance(data, dict) else None
        first = choices[0] if isinstance(choices, list) and choices else None
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ApiError(
                code="MALFORMED_RESPONSE",
                message=FORMAT_ERROR_MESSAGE,
                http_status=502,
                provider_id=self.descriptor.id,
            )
        return content
