# Customer-facing e-mail notifications
import os
import resend
from typing import Dict
from dotenv import load_dotenv

load_dotenv()


def _layout(title, subtitle, body_html):
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="UTF-8">
            <meta name="viewport" content="width=device-width, initial-scale=1.0">
        </head>
        <body style="margin: 0; padding: 0; font-family: 'Segoe UI', Arial, sans-serif; background-color: #f1f5f9;">
            <table width="100%" cellpadding="0" cellspacing="0" style="background-color: #f1f5f9; padding: 30px 20px;">
                <tr>
                    <td align="center">
                        <table width="600" cellpadding="0" cellspacing="0" style="background-color: #ffffff; border-radius: 16px; overflow: hidden;">
                            <tr>
                                <td style="background: #0f172a; padding: 40px; text-align: center;">
                                    <h1 style="color: #facc15; margin: 0; font-size: 30px; letter-spacing: 3px;">FAYEED AUTO CARE</h1>
                                    <h2 style="color: #ffffff; margin: 15px 0 0 0; font-size: 22px;">{title}</h2>
                                    <p style="color: #cbd5e1; margin: 8px 0 0 0; font-size: 15px;">{subtitle}</p>
                                </td>
                            </tr>
                            <tr>
                                <td style="padding: 40px; color: #334155; font-size: 16px; line-height: 1.6;">
                                    {body_html}
                                </td>
                            </tr>
                        </table>
                    </td>
                </tr>
            </table>
        </body>
        </html>
        """


class EmailService:
    """
    Centralized email service using Resend
    """

    def __init__(self):
        """Initialize Resend with API key"""
        self.from_email = os.getenv("RESEND_FROM_EMAIL", "onboarding@resend.dev")
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        self.api_key = os.getenv("RESEND_API_KEY")

        if os.getenv("TESTING") in ("1", "True"):
            self.disabled = True
            self.api_key = None
            print("⚠️ EmailService running in TEST MODE — no API key required")
            return

        if not self.api_key:
            self.disabled = True
            print("⚠️ RESEND_API_KEY not set — emails will not be sent")
            return

        self.disabled = False
        resend.api_key = self.api_key

    def _send(self, to_email, subject, html, success_message):
        if self.disabled:
            return {
                "success": True,
                "message": f"{success_message} (email delivery disabled)",
                "email_id": None,
            }
        try:
            params = {
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
            }
            email_response = resend.Emails.send(params)
            return {
                "success": True,
                "message": success_message,
                "email_id": email_response.get("id"),
            }
        except Exception as e:
            return {"success": False, "error": str(e)}

    def send_test_email(self, to_email: str) -> Dict:
        """
        Send a test email to verify Resend is working

        Args:
            to_email: Recipient email address

        Returns:
            Dict with 'success' boolean and 'message' or 'error'
        """
        html = _layout(
            "Test Email",
            "Your email configuration works",
            "<p>This is a test message from the booking system.</p>",
        )
        return self._send(to_email, "Test Email from Fayeed Auto Care", html,
                          "Test email sent successfully")

    def send_booking_confirmation(self, to_email, customer_name, confirmation_code,
                                  service_name, booking_date, time_slot, branch_name,
                                  total_price):
        """
        Send booking confirmation right after a booking is created
        """
        body = f"""
            <p>Hi <strong>{customer_name}</strong>,</p>
            <p>Your booking has been received. Please keep your confirmation code.</p>
            <table width="100%" cellpadding="8" cellspacing="0" style="border: 2px solid #facc15; border-radius: 12px;">
                <tr><td><strong>Confirmation</strong></td><td>{confirmation_code}</td></tr>
                <tr><td><strong>Service</strong></td><td>{service_name}</td></tr>
                <tr><td><strong>Date</strong></td><td>{booking_date}</td></tr>
                <tr><td><strong>Time</strong></td><td>{time_slot}</td></tr>
                <tr><td><strong>Branch</strong></td><td>{branch_name}</td></tr>
                <tr><td><strong>Total</strong></td><td>PHP {total_price:,.2f}</td></tr>
            </table>
            <p style="margin-top: 30px;">
                <a href="{self.frontend_url}/my-bookings" style="background: #0f172a; color: #ffffff; padding: 12px 28px; border-radius: 8px; text-decoration: none;">View Booking</a>
            </p>
        """
        html = _layout("Booking Received", "We look forward to seeing you", body)
        return self._send(
            to_email,
            f"Booking Confirmation {confirmation_code}",
            html,
            f"Booking confirmation sent to {to_email}",
        )

    def send_subscription_decision(self, to_email, customer_name, package_type,
                                   approved, notes=None):
        """
        Tell a customer whether their membership request was approved
        """
        if approved:
            title = "Subscription Approved"
            subtitle = "Your membership is now active"
            message = f"Your <strong>{package_type}</strong> subscription has been approved and activated!"
            link = f"{self.frontend_url}/manage-subscription"
            link_text = "View Subscription"
        else:
            title = "Subscription Request Update"
            subtitle = "Your request needs attention"
            message = (
                f"Your <strong>{package_type}</strong> subscription request has been rejected."
                f" Reason: {notes or 'Not specified'}"
            )
            link = f"{self.frontend_url}/subscriptions"
            link_text = "Try Again"

        body = f"""
            <p>Hi <strong>{customer_name}</strong>,</p>
            <p>{message}</p>
            <p style="margin-top: 30px;">
                <a href="{link}" style="background: #0f172a; color: #ffffff; padding: 12px 28px; border-radius: 8px; text-decoration: none;">{link_text}</a>
            </p>
        """
        return self._send(to_email, title, _layout(title, subtitle, body),
                          f"Subscription decision sent to {to_email}")

    def send_account_status_notice(self, to_email, reason):
        body = f"""
            <p>Your account has been suspended.</p>
            <p><strong>Reason:</strong> {reason}</p>
            <p>Please contact support for assistance.</p>
        """
        return self._send(
            to_email,
            "Account Status Update",
            _layout("Account Status Update", "Action on your account", body),
            f"Account status notice sent to {to_email}",
        )


email_service = EmailService()
