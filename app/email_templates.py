"""
Email layouts
The branded MJML layout wraps every notification email; the legacy inline-HTML
layout is kept for the channel test email.
"""

from html import escape
from typing import Optional

# Neutral palette of the branded layout
THEME = {
    "primary": "#1a1a1a",
    "background": "#f5f5f5",
    "card_bg": "#ffffff",
    "text_primary": "#1a1a1a",
    "text_secondary": "#4a4a4a",
    "text_muted": "#8a8a8a",
    "border": "#e5e5e5",
    "footer_bg": "#fafafa",
    "legacy_accent": "#f97316",
}


def resolve_logo_url(logo_setting: Optional[str], base_url: str) -> str:
    """APP_LOGO may be absolute or a path under the dashboard; default to the app icon"""
    if logo_setting:
        if logo_setting.startswith("http"):
            return logo_setting
        separator = "" if logo_setting.startswith("/") else "/"
        return f"{base_url}{separator}{logo_setting}"
    return f"{base_url}/icon-512.png"


def branded_email_template(
    content: str,
    logo_url: str,
    title: str = "HostHub Notification",
    greeting: Optional[str] = None,
    action_url: Optional[str] = None,
    action_text: Optional[str] = None,
    footer_text: Optional[str] = None,
) -> str:
    """Branded MJML layout for all notification emails"""
    body_html = content.replace("\n", "<br>")

    greeting_block = ""
    if greeting:
        greeting_block = f"""
            <mj-text font-size="16px" color="{THEME['text_primary']}" padding="0 0 20px 0">
              {greeting}
            </mj-text>
        """

    cta_section = ""
    if action_url and action_text:
        cta_section = f"""
            <mj-button
              href="{escape(action_url, quote=True)}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="500"
              border-radius="6px"
              padding="30px 0"
              inner-padding="14px 28px"
              font-size="15px">
              {escape(action_text)}
            </mj-button>
        """

    footer_extra = ""
    if footer_text:
        footer_extra = f"""
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}" padding="0 0 4px 0">
              {footer_text}
            </mj-text>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{escape(title)}</mj-title>
        <mj-preview>{escape(title)}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="15px" line-height="1.7" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}" width="600px">
        <mj-section background-color="{THEME['card_bg']}" padding="40px 20px 30px 20px" border-bottom="1px solid {THEME['border']}">
          <mj-column>
            <mj-image src="{escape(logo_url, quote=True)}" alt="HostHub" width="180px" padding="0" />
          </mj-column>
        </mj-section>
        <mj-section background-color="{THEME['card_bg']}" padding="40px 40px 30px 40px">
          <mj-column>
            {greeting_block}
            <mj-text padding="0">
              {body_html}
            </mj-text>
            {cta_section}
          </mj-column>
        </mj-section>
        <mj-section background-color="{THEME['footer_bg']}" padding="30px 40px" border-top="1px solid {THEME['border']}">
          <mj-column>
            {footer_extra}
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}" padding="0 0 4px 0">
              This is an automated message from HostHub
            </mj-text>
            <mj-text align="center" font-size="12px" font-weight="500" color="{THEME['text_primary']}" padding="8px 0 0 0">
              Hosthub by Aura Realty
            </mj-text>
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def generate_email_template(
    title: str, content: str, action_url: Optional[str] = None, action_text: Optional[str] = None
) -> str:
    """Legacy inline-HTML layout with the orange HostHub header"""
    accent = THEME["legacy_accent"]
    action_block = ""
    if action_url and action_text:
        action_block = f"""
    <div style="margin: 30px 0; text-align: center;">
      <a href="{action_url}" style="background-color: {accent}; color: white; padding: 12px 24px; text-decoration: none; border-radius: 6px; display: inline-block; font-weight: bold;">
        {action_text}
      </a>
    </div>"""

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{escape(title)}</title>
</head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="background-color: {accent}; color: white; padding: 20px; text-align: center; border-radius: 8px 8px 0 0;">
    <h1 style="margin: 0;">HostHub</h1>
  </div>
  <div style="background-color: #ffffff; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 8px 8px;">
    <h2 style="color: {accent}; margin-top: 0;">{escape(title)}</h2>
    <div style="margin: 20px 0;">
      {content}
    </div>{action_block}
  </div>
  <div style="text-align: center; margin-top: 20px; color: #6b7280; font-size: 12px;">
    <p>This is an automated message from HostHub. Please do not reply to this email.</p>
  </div>
</body>
</html>"""
