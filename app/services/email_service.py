import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi_mail import MessageSchema, MessageType

from ..core.config import Config
from ..mails.send_mail import mail


logger = logging.getLogger(__name__)


class EmailService:

    async def send_template_email(
        self,
        to_email: str,
        subject: str,
        template_name: str,
        context: Dict[str, Any]
    ) -> bool:
        """
        Sends an email using a template with provided context.

        Args:
            to_email (str): Recipient email address
            subject (str): Email subject
            template_name (str): Name of the template file (e.g., "order-status-update.html")
            context (Dict[str, Any]): Context variables for the template

        Returns:
            bool: True if email was sent successfully, False otherwise
        """
        try:
            message = MessageSchema(
                subject=subject,
                recipients=[to_email],
                template_body=context,
                subtype=MessageType.html,
            )

            await mail.send_message(message, template_name=template_name)
            return True

        except Exception as e:
            # Notification failures never reach the caller
            logger.error(f"Failed to send '{template_name}' to {to_email}: {e}", exc_info=True)
            return False

    async def send_order_confirmation(
        self,
        to_email: str,
        order_data: Dict[str, Any],
        customer_name: str = "Valued Customer"
    ) -> bool:
        """Send order confirmation email"""
        template_data = {
            "customer_name": customer_name,
            "order": order_data,
            "currency": Config.CURRENCY,
            "current_year": datetime.now().year,
        }

        return await self.send_template_email(
            to_email=to_email,
            subject=f"Order Confirmation #{order_data.get('id', '')}",
            template_name="order-confirmation.html",
            context=template_data
        )

    async def send_order_status_update(
        self,
        to_email: str,
        order_data: Dict[str, Any],
        reason: Optional[str] = None,
        customer_name: str = "Valued Customer"
    ) -> bool:
        """Send order status update email"""
        template_data = {
            "customer_name": customer_name,
            "order": order_data,
            "status_label": order_data.get("status_label", order_data.get("status")),
            "reason": reason,
            "current_year": datetime.now().year,
        }

        return await self.send_template_email(
            to_email=to_email,
            subject=f"Order #{order_data.get('id', '')} Status Update",
            template_name="order-status-update.html",
            context=template_data
        )
