"""
Swagger/OpenAPI configuration for the Car Wash Backend API
"""

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs",
}

SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Car Wash Backend API",
        "description": "REST API for car wash bookings, memberships, admin configuration, inventory and point of sale",
        "contact": {"email": "support@fayeedautocare.com"},
        "version": "1.0.0",
    },
    "host": "",
    "basePath": "/",
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": 'JWT Authorization header using the Bearer scheme. Example: "Authorization: Bearer {token}"',
        }
    },
    "security": [{"Bearer": []}],
    "tags": [
        {"name": "Authentication", "description": "Registration, login and user management"},
        {"name": "Bookings", "description": "Booking, rescheduling and slot availability"},
        {"name": "Subscriptions", "description": "Membership requests and approval workflow"},
        {"name": "Admin Config", "description": "Pricing, scheduling, branches and blackout dates"},
        {"name": "Dashboard", "description": "Admin dashboard statistics"},
        {"name": "Notifications", "description": "In-app notifications and email checks"},
        {"name": "Inventory", "description": "Stock items and movements"},
        {"name": "POS", "description": "Cashier sessions, sales, expenses and reports"},
    ],
    "definitions": {
        "Error": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "example": "error"},
                "message": {"type": "string"},
                "details": {"type": "string"},
            },
        },
        "Success": {
            "type": "object",
            "properties": {
                "status": {"type": "string", "example": "success"},
                "message": {"type": "string"},
            },
        },
        "User": {
            "type": "object",
            "properties": {
                "id": {"type": "integer"},
                "email": {"type": "string", "format": "email"},
                "full_name": {"type": "string"},
                "role": {
                    "type": "string",
                    "enum": [
                        "user",
                        "admin",
                        "superadmin",
                        "cashier",
                        "inventory_manager",
                        "manager",
                        "crew",
                    ],
                },
                "is_active": {"type": "boolean"},
                "subscription_status": {"type": "string", "example": "free"},
            },
        },
        "Booking": {
            "type": "object",
            "properties": {
                "id": {"type": "integer"},
                "confirmation_code": {"type": "string", "example": "FAC-123456-AB1"},
                "category": {"type": "string", "example": "carwash"},
                "service": {"type": "string", "example": "basic"},
                "service_type": {"type": "string", "enum": ["branch", "home"]},
                "date": {"type": "string", "format": "date"},
                "time_slot": {"type": "string", "example": "09:00"},
                "branch": {"type": "string", "example": "main"},
                "total_price": {"type": "number", "format": "float"},
                "status": {"type": "string", "example": "pending"},
            },
        },
        "SlotAvailability": {
            "type": "object",
            "properties": {
                "date": {"type": "string", "format": "date"},
                "time_slot": {"type": "string"},
                "branch": {"type": "string"},
                "is_available": {"type": "boolean"},
                "reason": {
                    "type": "string",
                    "enum": [
                        "unknown_branch",
                        "blackout_date",
                        "closed",
                        "lead_time",
                        "fully_booked",
                    ],
                },
                "booked_count": {"type": "integer"},
                "capacity": {"type": "integer"},
                "remaining": {"type": "integer"},
            },
        },
        "SubscriptionRequest": {
            "type": "object",
            "properties": {
                "id": {"type": "integer"},
                "user_id": {"type": "integer"},
                "package_type": {"type": "string", "example": "VIP Gold Ultimate"},
                "status": {
                    "type": "string",
                    "enum": ["pending", "approved", "rejected", "under_review"],
                },
                "customer_status": {"type": "string", "example": "active"},
                "review_notes": {"type": "string"},
            },
        },
    },
}
