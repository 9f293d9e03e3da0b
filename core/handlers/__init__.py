from core.handlers.notification_handlers import register_notification_handlers
