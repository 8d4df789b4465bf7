"""调用方身份识别。

真正的身份系统属于外部协作方，这里只约定一个最小接口：
给定 Authorization 头，返回 owner_id，无法识别时抛出 UnauthenticatedError。
"""

from typing import Mapping, Optional, Protocol

from steering_core.domain.exceptions import UnauthenticatedError


class Authenticator(Protocol):
    def authenticate(self, authorization: Optional[str]) -> str:
        ...


class StaticTokenAuthenticator:
    """基于静态 token 表的实现，token 来自配置 auth_tokens。"""

    def __init__(self, tokens: Mapping[str, str]):
        self._tokens = dict(tokens)

    def authenticate(self, authorization: Optional[str]) -> str:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthenticatedError()
        owner_id = self._tokens.get(token.strip())
        if owner_id is None:
            raise UnauthenticatedError()
        return owner_id
