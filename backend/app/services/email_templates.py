"""
Email Templates

Localized subjects and bodies for auth mail. Templates live in the
email_templates table (seeded with the defaults below); a hard-coded
fallback is used when a row is missing or disabled.

Placeholders: {code}, {app_name}, {expire_minutes}, {link}
"""
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.email import EmailTemplate

logger = logging.getLogger(__name__)

TEMPLATE_REGISTER_CODE = "register_code"
TEMPLATE_RESET_PASSWORD = "reset_password"

DEFAULT_TEMPLATES = {
    (TEMPLATE_REGISTER_CODE, "zh-CN"): (
        "【{app_name}】注册验证码",
        "<p>您的验证码是：<b>{code}</b></p><p>有效期{expire_minutes}分钟，请勿泄露。</p>",
    ),
    (TEMPLATE_REGISTER_CODE, "en-US"): (
        "[{app_name}] Registration Code",
        "<p>Your verification code is: <b>{code}</b></p><p>Valid for {expire_minutes} minutes. Do not share.</p>",
    ),
    (TEMPLATE_RESET_PASSWORD, "zh-CN"): (
        "【{app_name}】密码重置请求",
        "<p>请点击以下链接重置密码：<a href=\"{link}\">重置密码</a></p>"
        "<p>或者使用验证码：<b>{code}</b></p><p>有效期{expire_minutes}分钟。</p>",
    ),
    (TEMPLATE_RESET_PASSWORD, "en-US"): (
        "[{app_name}] Password Reset Request",
        "<p>Click here to reset password: <a href=\"{link}\">Reset Password</a></p>"
        "<p>Or use code: <b>{code}</b></p><p>Valid for {expire_minutes} minutes.</p>",
    ),
}

# Plain fallbacks used when the table has no enabled row
FALLBACK_TEMPLATES = {
    (TEMPLATE_REGISTER_CODE, "zh-CN"): (
        "【{app_name}】注册验证码",
        "您的验证码是：{code}，有效期{expire_minutes}分钟。",
    ),
    (TEMPLATE_REGISTER_CODE, "en-US"): (
        "[{app_name}] Registration Code",
        "Your code is: {code}, valid for {expire_minutes} minutes.",
    ),
    (TEMPLATE_RESET_PASSWORD, "zh-CN"): (
        "【{app_name}】密码重置请求",
        "请点击以下链接重置密码：<br><a href=\"{link}\">{link}</a><br>或者使用验证码：{code}<br>有效期{expire_minutes}分钟。",
    ),
    (TEMPLATE_RESET_PASSWORD, "en-US"): (
        "[{app_name}] Password Reset Request",
        "Click the link below to reset your password:<br><a href=\"{link}\">{link}</a><br>"
        "Or use code: {code}<br>Valid for {expire_minutes} minutes.",
    ),
}


@dataclass
class RenderedEmail:
    template_name: str
    lang: str
    subject: str
    content: str


def substitute(text: str, variables: Dict[str, str]) -> str:
    """Replace {name} placeholders. Unknown placeholders are left alone."""
    for key, value in variables.items():
        text = text.replace("{" + key + "}", str(value))
    return text


class EmailTemplateService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_template(self, name: str, lang: str) -> Optional[EmailTemplate]:
        result = await self.db.execute(
            select(EmailTemplate).where(
                EmailTemplate.name == name,
                EmailTemplate.lang == lang,
                EmailTemplate.is_enabled.is_(True),
            )
        )
        return result.scalar_one_or_none()

    async def render(self, name: str, lang: str, variables: Dict[str, str]) -> RenderedEmail:
        template = await self.get_template(name, lang)
        if template is not None:
            subject, content = template.subject, template.content
        else:
            logger.info(f"No enabled template {name}/{lang}, using built-in fallback")
            subject, content = FALLBACK_TEMPLATES.get(
                (name, lang), FALLBACK_TEMPLATES[(name, "en-US")]
            )
        return RenderedEmail(
            template_name=name,
            lang=lang,
            subject=substitute(subject, variables),
            content=substitute(content, variables),
        )

    async def seed_defaults(self) -> int:
        """Insert any default template that is missing. Existing rows are left as edited."""
        result = await self.db.execute(select(EmailTemplate.name, EmailTemplate.lang))
        existing = {(row.name, row.lang) for row in result}

        created = 0
        for (name, lang), (subject, content) in DEFAULT_TEMPLATES.items():
            if (name, lang) in existing:
                continue
            self.db.add(EmailTemplate(name=name, lang=lang, subject=subject, content=content, is_enabled=True))
            created += 1

        if created:
            await self.db.flush()
            logger.info(f"Seeded {created} default email templates")
        return created
