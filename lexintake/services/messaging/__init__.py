from lexintake.services.messaging.base import OutboundSender
from lexintake.services.messaging.whatsapp_provider import WhatsAppCloudSender

__all__ = ["OutboundSender", "WhatsAppCloudSender"]
