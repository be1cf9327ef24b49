"""
WhatsApp notification service for ticket disposition updates.
Sends template messages through the Gallabox WhatsApp gateway.
"""
import logging
import re
from typing import Optional

import requests

import config

logger = logging.getLogger(__name__)


def format_phone_number(phone: str, country_code: Optional[str] = None) -> str:
    """Normalise a phone number to <country code><national number>."""
    code = country_code or config.WHATSAPP_COUNTRY_CODE
    number = (phone or '').strip()
    number = re.sub(rf'^\+{code}', '', number)
    number = re.sub(r'[\s\-()]', '', number)
    if len(number) > 10:
        number = re.sub(rf'^{code}', '', number)
    return f'{code}{number}'


class NotificationService:
    """Send WhatsApp template notifications for ticket events."""

    def __init__(self):
        self.api_url = config.WHATSAPP_API_URL
        self.api_key = config.WHATSAPP_API_KEY
        self.api_secret = config.WHATSAPP_API_SECRET
        self.channel_id = config.WHATSAPP_CHANNEL_ID
        self.timeout = config.WHATSAPP_TIMEOUT

    def is_configured(self) -> bool:
        return all([self.api_url, self.api_key, self.api_secret, self.channel_id])

    def send_templated(self, phone: str, template_name: str, variables: dict, name: str = '') -> bool:
        """Send one template message. Never raises; returns whether the gateway accepted it."""
        if not self.is_configured():
            logger.info('[Notification] WhatsApp gateway not configured, skipping %s', template_name)
            return False
        if not phone:
            logger.warning('[Notification] No phone number, skipping %s', template_name)
            return False

        payload = {
            'channelId': self.channel_id,
            'channelType': 'whatsapp',
            'recipient': {
                'name': name,
                'phone': format_phone_number(phone),
            },
            'whatsapp': {
                'type': 'template',
                'template': {
                    'templateName': template_name,
                    'bodyValues': variables,
                },
            },
        }
        headers = {
            'apiKey': self.api_key,
            'apiSecret': self.api_secret,
            'Content-Type': 'application/json',
        }

        try:
            resp = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error('[Notification Error] %s: %s', template_name, e)
            return False

        if not resp.ok:
            logger.error('[Notification Error] %s rejected: %s %s', template_name, resp.status_code, resp.text)
            return False

        logger.info('[Notification] WhatsApp %s sent to %s', template_name, payload['recipient']['phone'])
        return True

    def _ticket_variables(self, ticket: dict) -> dict:
        return {
            'Name': ticket.get('name') or '',
            'ticket_id': ticket.get('ticket_id') or 'TBD',
        }

    def send_disposition_notification(self, ticket: dict, disposition: Optional[str] = None) -> bool:
        """
        Send the template mapped to a disposition.
        Dispositions without a template are a no-op and count as success.
        """
        disposition = disposition or ticket.get('disposition')
        template = config.WHATSAPP_TEMPLATES.get(disposition)
        if template is None:
            logger.debug('[Notification] No WhatsApp template for disposition %r', disposition)
            return True
        return self.send_templated(ticket.get('phone'), template, self._ticket_variables(ticket),
                                   name=ticket.get('name') or '')

    def send_ticket_created(self, ticket: dict) -> bool:
        """Confirmation for a newly submitted ticket."""
        return self.send_disposition_notification(ticket, config.DEFAULT_NEW_DISPOSITION)

    def send_external_remarks(self, ticket: dict) -> bool:
        """Tell the submitter that external remarks were added."""
        template = config.WHATSAPP_EVENT_TEMPLATES.get(config.EXTERNAL_REMARKS_EVENT)
        if template is None:
            return True
        variables = self._ticket_variables(ticket)
        variables['remarks'] = ticket.get('ext_remarks') or ''
        return self.send_templated(ticket.get('phone'), template, variables, name=ticket.get('name') or '')


# Singleton instance
notifier = NotificationService()
