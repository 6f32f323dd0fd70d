"""
app.services.identity
~~~~~~~~~~~~~~~~~~~~~

身份解析服务 —— 用户的校验、创建、查找，以及保留 AI 身份的维护。

校验规则:
  - username: 去除首尾空白并转小写后 2-50 字符，仅允许字母、数字、``_``、``-``
  - email: 可选，同样规范化，需符合 ``x@y.z`` 形态且不超过 255 字符
  - 保留用户名（AI 助手）不能被普通用户占用

预期内的失败（校验 / 冲突 / 不存在）以 ``OperationResult`` 返回；存储层异常
被记录并转换为 ``internal`` 结果。
"""
from __future__ import annotations

import hashlib
import re

from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.logging import get_logger
from app.db.message_log import MessageLog
from app.db.user_repository import UserRepository
from app.schemas.chat import User
from app.schemas.results import FieldError, OperationResult

logger = get_logger(__name__)

USERNAME_MIN_LENGTH = 2
USERNAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 255

_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_DISALLOWED_USERNAME_CHARS = re.compile(r"[^a-z0-9_-]")

CLIENT_USERNAME_PREFIX = "user_"


def normalize(value: str | None) -> str | None:
    """去除首尾空白并转小写；空字符串视为未提供。"""
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def validate_user_input(username: str | None, email: str | None = None) -> list[FieldError]:
    """校验已规范化的用户名和邮箱，返回全部字段错误（无错误时为空列表）。"""
    errors: list[FieldError] = []

    if not username:
        errors.append(FieldError(field="username", message="Username is required"))
    else:
        if len(username) < USERNAME_MIN_LENGTH:
            errors.append(FieldError(
                field="username",
                message=f"Username must be at least {USERNAME_MIN_LENGTH} characters long",
            ))
        if len(username) > USERNAME_MAX_LENGTH:
            errors.append(FieldError(
                field="username",
                message=f"Username must be less than {USERNAME_MAX_LENGTH} characters long",
            ))
        if not _USERNAME_PATTERN.match(username):
            errors.append(FieldError(
                field="username",
                message="Username can only contain letters, numbers, underscores, and dashes",
            ))

    if email:
        if not _EMAIL_PATTERN.match(email):
            errors.append(FieldError(field="email", message="Invalid email format"))
        if len(email) > EMAIL_MAX_LENGTH:
            errors.append(FieldError(
                field="email",
                message=f"Email must be less than {EMAIL_MAX_LENGTH} characters long",
            ))

    return errors


def derive_username(client_id: str) -> str:
    """把任意客户端标识映射为合法用户名。

    合法且不超长的标识直接得到 ``user_{client_id}``；否则非法字符替换为 ``_``，
    截断后追加原标识的 8 位哈希。标识大小写不敏感。
    """
    raw = client_id.strip().lower()
    candidate = f"{CLIENT_USERNAME_PREFIX}{raw}"
    if len(candidate) <= USERNAME_MAX_LENGTH and _USERNAME_PATTERN.match(candidate):
        return candidate

    digest = hashlib.sha1(raw.encode("utf-8")).hexdigest()[:8]
    head = CLIENT_USERNAME_PREFIX + _DISALLOWED_USERNAME_CHARS.sub("_", raw)
    return f"{head[:USERNAME_MAX_LENGTH - len(digest) - 1]}_{digest}"


class IdentityResolver:
    """用户身份解析器。

    Attributes:
        users: 用户仓库。
        messages: 消息日志，用于保留 AI 身份首次就绪后的作者修复；可为 ``None``。
        agent_username: 保留的 AI 助手用户名。
    """

    def __init__(
        self,
        users: UserRepository,
        messages: MessageLog | None = None,
        agent_username: str = "ai-assistant",
    ) -> None:
        self.users = users
        self.messages = messages
        self.agent_username = agent_username.strip().lower()
        self._agent: User | None = None
        self._authorship_repaired = False

    # ── 普通用户 ──────────────────────────────────────────────────────

    def _check(self, username: str | None, email: str | None) -> OperationResult[User] | None:
        errors = validate_user_input(username, email)
        if not errors and username == self.agent_username:
            errors.append(FieldError(field="username", message="Username is reserved"))
        if errors:
            return OperationResult.fail("validation", errors=errors)
        return None

    async def ensure_user(self, username: str, email: str | None = None) -> OperationResult[User]:
        """按用户名获取或创建用户（幂等）。

        用户名已存在时直接返回已有记录；邮箱被其他用户占用时返回冲突。
        """
        username, email = normalize(username), normalize(email)
        failure = self._check(username, email)
        if failure is not None:
            return failure

        try:
            existing = await self.users.find_by_username(username)
            if existing is not None:
                return OperationResult[User].ok(existing)

            if email and await self.users.find_by_email(email) is not None:
                return OperationResult.fail("conflict", field="email", message="Email already exists")

            try:
                user = await self.users.insert(username, email)
            except DuplicateKeyError:
                # 并发创建：同名用户已被其他调用者写入
                existing = await self.users.find_by_username(username)
                if existing is not None:
                    return OperationResult[User].ok(existing)
                return OperationResult.fail("conflict", field="email", message="Email already exists")
        except PyMongoError as e:
            logger.error("用户获取/创建失败 | username=%s | %s", username, e, exc_info=True)
            return OperationResult.fail("internal", message="Failed to resolve user")

        logger.info("用户已创建 | user=%s | username=%s", user.id, user.username)
        return OperationResult[User].ok(user)

    async def register_user(self, username: str, email: str | None = None) -> OperationResult[User]:
        """显式注册：用户名或邮箱已存在均视为冲突。"""
        username, email = normalize(username), normalize(email)
        failure = self._check(username, email)
        if failure is not None:
            return failure

        try:
            if await self.users.find_by_username(username) is not None:
                return OperationResult.fail("conflict", field="username", message="Username already exists")
            if email and await self.users.find_by_email(email) is not None:
                return OperationResult.fail("conflict", field="email", message="Email already exists")

            try:
                user = await self.users.insert(username, email)
            except DuplicateKeyError:
                if await self.users.find_by_username(username) is not None:
                    return OperationResult.fail("conflict", field="username", message="Username already exists")
                return OperationResult.fail("conflict", field="email", message="Email already exists")
        except PyMongoError as e:
            logger.error("用户注册失败 | username=%s | %s", username, e, exc_info=True)
            return OperationResult.fail("internal", message="Failed to create user")

        logger.info("用户已注册 | user=%s | username=%s", user.id, user.username)
        return OperationResult[User].ok(user)

    async def resolve_client(self, client_id: str) -> OperationResult[User]:
        """把客户端提供的标识映射为用户。

        已存在的用户 ID 原样返回，否则按 ``derive_username`` 得到的用户名获取或创建。
        """
        try:
            user = await self.users.find_by_id(client_id)
        except PyMongoError as e:
            logger.error("客户端身份解析失败 | client=%s | %s", client_id, e, exc_info=True)
            return OperationResult.fail("internal", message="Failed to resolve user")
        if user is not None:
            return OperationResult[User].ok(user)
        return await self.ensure_user(derive_username(client_id))

    async def get_user(self, user_id: str) -> OperationResult[User]:
        try:
            user = await self.users.find_by_id(user_id)
        except PyMongoError as e:
            logger.error("用户查询失败 | user=%s | %s", user_id, e, exc_info=True)
            return OperationResult.fail("internal", message="Failed to load user")
        if user is None:
            return OperationResult.fail("not_found", field="userId", message="User not found")
        return OperationResult[User].ok(user)

    async def is_username_available(self, username: str) -> bool:
        username = normalize(username)
        if not username or username == self.agent_username:
            return False
        return await self.users.find_by_username(username) is None

    async def is_email_available(self, email: str) -> bool:
        email = normalize(email)
        if not email:
            return False
        return await self.users.find_by_email(email) is None

    # ── 保留 AI 身份 ──────────────────────────────────────────────────

    async def ensure_reserved_agent(self) -> User:
        """获取或创建保留的 AI 助手用户（幂等，并发安全）。

        先读后写，唯一索引兜底：插入遇到 ``DuplicateKeyError`` 说明其他调用者
        已创建，重新读取即可。进程内首次成功解析后触发一次占位作者修复。

        Raises:
            pymongo.errors.PyMongoError: 存储不可用。
        """
        if self._agent is not None:
            return self._agent

        agent = await self.users.find_by_username(self.agent_username)
        if agent is None:
            try:
                agent = await self.users.insert(self.agent_username, is_agent=True)
                logger.info("保留 AI 身份已创建 | user=%s", agent.id)
            except DuplicateKeyError:
                agent = await self.users.find_by_username(self.agent_username)
                if agent is None:
                    raise
        self._agent = agent

        if not self._authorship_repaired:
            self._authorship_repaired = True
            if self.messages is not None:
                await self.messages.repair_agent_authorship(agent.id)

        return agent
