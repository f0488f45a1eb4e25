# Business configuration: pricing, scheduling, branches, terms
import copy
import re
from datetime import date

from flask import current_app
from sqlalchemy import select

from carwash.extensions import db
from carwash.models import AdminSetting

CONFIG_KEY = "admin_config"
PRICING_CATEGORIES = ("carwash", "autoDetailing", "grapheneCoating")
WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _working_day(enabled=True):
    return {
        "enabled": enabled,
        "startTime": "08:00",
        "endTime": "18:00",
        "slotDuration": 60,
    }


DEFAULT_CONFIG = {
    "pricing": {
        "carwash": {
            "classic": {
                "name": "Classic Wash",
                "price": 200,
                "duration": "30 mins",
                "description": "Smart exterior cleaning with quality optimization",
                "features": [
                    "Professional wash system",
                    "Exterior cleaning",
                    "Tire shine",
                    "Basic protection",
                ],
            },
            "regular": {
                "name": "Regular Wash",
                "price": 300,
                "duration": "45 mins",
                "description": "Standard wash with interior wipe",
                "features": [
                    "Professional wash system",
                    "Exterior cleaning",
                    "Interior wipe down",
                    "Tire shine",
                    "Basic protection",
                ],
            },
            "vip_pro": {
                "name": "VIP Pro Wash",
                "price": 400,
                "duration": "60 mins",
                "description": "Premium wash with advanced care systems",
                "features": [
                    "Premium wash",
                    "Interior deep clean",
                    "Paint protection",
                    "Wax application",
                    "Dashboard treatment",
                ],
                "popular": True,
            },
            "vip_pro_max": {
                "name": "VIP Pro Max",
                "price": 800,
                "duration": "75 mins",
                "description": "Complete wash with detailing",
                "features": [
                    "Premium wash",
                    "Interior deep clean",
                    "Paint protection",
                    "Wax application",
                    "Dashboard treatment",
                    "Wheel detailing",
                ],
            },
            "premium": {
                "name": "Premium Wash",
                "price": 1500,
                "duration": "90 mins",
                "description": "Full premium service",
                "features": [
                    "Complete exterior detail",
                    "Full interior restoration",
                    "Paint correction",
                    "Premium wax application",
                    "Leather conditioning",
                    "Engine bay clean",
                ],
            },
            "fac": {
                "name": "FAC Wash",
                "price": 2500,
                "duration": "120 mins",
                "description": "Ultimate luxury experience",
                "features": [
                    "Complete exterior detail",
                    "Full interior restoration",
                    "Paint correction",
                    "Ceramic coating application",
                    "Leather conditioning",
                    "Engine bay clean",
                    "VIP treatment",
                ],
            },
        },
        "autoDetailing": {
            "car": {
                "sedan": 3500,
                "suv": 4500,
                "pickup": 5000,
                "van_small": 5500,
                "van_big": 6500,
            },
            "motorcycle": {"regular": 1200, "medium": 1500, "big_bike": 1800},
        },
        "grapheneCoating": {
            "car": {
                "sedan": 15000,
                "suv": 18000,
                "pickup": 20000,
                "van_small": 22000,
                "van_big": 25000,
            },
            "motorcycle": {"regular": 5000, "medium": 6500, "big_bike": 8000},
        },
    },
    "scheduling": {
        "workingHours": {
            "monday": _working_day(),
            "tuesday": _working_day(),
            "wednesday": _working_day(),
            "thursday": _working_day(),
            "friday": _working_day(),
            "saturday": _working_day(),
            "sunday": _working_day(enabled=False),
        },
        "capacityPerSlot": 2,
        "bufferTime": 15,
        "leadTime": 2,
        "blackoutDates": [],
        "timezone": "Asia/Manila",
    },
    "homeService": {
        "enabled": True,
        "availableServices": {
            "carwash": ["vip_pro_max", "premium", "fac"],
            "motorcycleCarwash": ["fac"],
            "autoDetailing": True,
            "grapheneCoating": True,
        },
        "priceMultiplier": 1.2,
        "coverage": {
            "areas": [
                "Tumaga",
                "Boalan",
                "Zamboanga City",
                "Downtown",
                "Rio Hondo",
                "Tetuan",
            ],
            "maxDistance": 15,
        },
        "leadTime": 4,
    },
    "terms": {
        "cancellationPolicy": (
            "Free cancellation up to 2 hours before appointment time. "
            "No-show or late cancellation may result in charges."
        ),
        "termsAndConditions": (
            "By booking this service, you agree to our terms and conditions. "
            "Payment terms and service policies apply."
        ),
        "noShowPolicy": "No-show appointments may be charged 50% of the service fee.",
    },
    "branches": [
        {
            "id": "tumaga",
            "name": "Tumaga Hub",
            "address": "Main Street, Tumaga District",
            "features": ["Premium Wash Bay", "VIP Lounge", "Express Service"],
            "enabled": True,
        },
        {
            "id": "boalan",
            "name": "Boalan Hub",
            "address": "Commercial Center, Boalan",
            "features": ["Premium Bay", "Customer Lounge", "Full Service"],
            "enabled": True,
        },
    ],
    "paymentMethods": {
        "branch": {
            "enabled": True,
            "name": "Pay at Branch",
            "description": "Pay when you arrive for your appointment",
        },
        "online": {
            "enabled": True,
            "name": "Online Payment",
            "description": "Bank transfer or GCash",
            "instructions": {
                "bankTransfer": {
                    "accountNumber": "1234-5678-90",
                    "accountName": "Fayeed Auto Care",
                    "bankName": "BPI",
                },
                "gcash": {"number": "09123456789", "accountName": "Fayeed Auto Care"},
            },
        },
    },
}


def deep_merge(defaults, overrides):
    """
    Merge ``overrides`` on top of ``defaults``.

    Nested dicts are merged key by key so every default key survives;
    any other value (lists included) from ``overrides`` replaces the default.
    """
    merged = copy.deepcopy(defaults)
    for key, value in (overrides or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def parse_hhmm(value):
    """Return minutes after midnight for an ``HH:MM`` string."""
    if not isinstance(value, str) or not _TIME_RE.match(value):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def generate_time_slots(config, day_of_week):
    """
    Build the bookable slot labels for a weekday.

    Slots start at ``startTime`` and step by ``slotDuration`` minutes
    while strictly before ``endTime``. Disabled or unknown days yield [].
    """
    working_hours = config["scheduling"]["workingHours"]
    day_config = working_hours.get((day_of_week or "").lower())
    if not day_config or not day_config.get("enabled"):
        return []

    start = parse_hhmm(day_config["startTime"])
    end = parse_hhmm(day_config["endTime"])
    step = int(day_config.get("slotDuration") or 0)
    if step <= 0:
        return []

    slots = []
    current = start
    while current < end:
        slots.append(f"{current // 60:02d}:{current % 60:02d}")
        current += step
    return slots


def find_branch(config, branch, enabled_only=True):
    """Look a branch up by id or display name."""
    if not branch:
        return None
    needle = str(branch).strip().lower()
    for candidate in config.get("branches", []):
        if enabled_only and not candidate.get("enabled", True):
            continue
        if (
            str(candidate.get("id", "")).lower() == needle
            or str(candidate.get("name", "")).lower() == needle
        ):
            return candidate
    return None


def quote_price(config, category, service=None, unit_type=None, unit_size=None,
                service_type="branch"):
    """
    Price a booking from the configured matrices.

    Returns a dict with ``base_price``, ``multiplier`` and ``total_price``.
    Raises ValueError when the combination is not priced or not offered
    as a home service.
    """
    pricing = config["pricing"]

    if category == "carwash":
        entry = pricing["carwash"].get(service)
        if not entry:
            raise ValueError(f"Unknown carwash service '{service}'")
        base_price = float(entry["price"])
    elif category in ("auto_detailing", "graphene_coating"):
        matrix_key = "autoDetailing" if category == "auto_detailing" else "grapheneCoating"
        sizes = pricing[matrix_key].get(unit_type or "")
        if not sizes or unit_size not in sizes:
            raise ValueError(
                f"No {category} price for unit type '{unit_type}' size '{unit_size}'"
            )
        base_price = float(sizes[unit_size])
    else:
        raise ValueError(f"Unknown service category '{category}'")

    multiplier = 1.0
    if service_type == "home":
        home = config["homeService"]
        if not home.get("enabled"):
            raise ValueError("Home service is currently unavailable")
        offered = home["availableServices"]
        if category == "carwash":
            key = "motorcycleCarwash" if unit_type == "motorcycle" else "carwash"
            if service not in offered.get(key, []):
                raise ValueError(f"'{service}' is not offered as a home service")
        elif category == "auto_detailing" and not offered.get("autoDetailing"):
            raise ValueError("Auto detailing is not offered as a home service")
        elif category == "graphene_coating" and not offered.get("grapheneCoating"):
            raise ValueError("Graphene coating is not offered as a home service")
        multiplier = float(home.get("priceMultiplier", 1.0))

    return {
        "base_price": round(base_price, 2),
        "multiplier": multiplier,
        "total_price": round(base_price * multiplier, 2),
    }


class AdminConfigManager:
    """
    Reads and writes the admin configuration stored in ``admin_settings``.

    Every read is merged over DEFAULT_CONFIG, so callers can rely on all
    default keys being present.
    """

    def _get_row(self):
        return db.session.scalar(select(AdminSetting).where(AdminSetting.key == CONFIG_KEY))

    def get_config(self):
        row = self._get_row()
        if row is None:
            return copy.deepcopy(DEFAULT_CONFIG)
        if not isinstance(row.value, dict):
            current_app.logger.error("Stored admin config is not an object, using defaults")
            return copy.deepcopy(DEFAULT_CONFIG)
        return deep_merge(DEFAULT_CONFIG, row.value)

    def save_config(self, config):
        if not isinstance(config, dict):
            raise ValueError("Configuration must be an object")
        merged = deep_merge(DEFAULT_CONFIG, config)
        validate_scheduling(merged["scheduling"])
        row = self._get_row()
        if row is None:
            row = AdminSetting(
                key=CONFIG_KEY,
                value=merged,
                description="Pricing, scheduling, branch and policy configuration",
                category="business",
                is_public=True,
            )
            db.session.add(row)
        else:
            # Reassign so the JSON column is flagged dirty
            row.value = merged
        db.session.commit()
        return merged

    def reset_to_defaults(self):
        return self.save_config(copy.deepcopy(DEFAULT_CONFIG))

    def update_pricing(self, category, pricing):
        if category not in PRICING_CATEGORIES:
            raise ValueError(
                f"Invalid pricing category '{category}'. "
                f"Must be one of: {', '.join(PRICING_CATEGORIES)}"
            )
        if not isinstance(pricing, dict):
            raise ValueError("Pricing must be an object")
        config = self.get_config()
        config["pricing"][category] = pricing
        return self.save_config(config)

    def update_scheduling(self, scheduling):
        if not isinstance(scheduling, dict):
            raise ValueError("Scheduling must be an object")
        config = self.get_config()
        config["scheduling"] = deep_merge(config["scheduling"], scheduling)
        return self.save_config(config)

    def update_terms(self, terms):
        if not isinstance(terms, dict):
            raise ValueError("Terms must be an object")
        config = self.get_config()
        config["terms"] = {**config["terms"], **terms}
        return self.save_config(config)

    def add_branch(self, branch):
        if not isinstance(branch, dict) or not branch.get("id") or not branch.get("name"):
            raise ValueError("Branch id and name are required")
        config = self.get_config()
        if any(b.get("id") == branch["id"] for b in config["branches"]):
            raise ValueError(f"Branch '{branch['id']}' already exists")
        config["branches"].append(
            {
                "id": branch["id"],
                "name": branch["name"],
                "address": branch.get("address", ""),
                "features": branch.get("features", []),
                "enabled": branch.get("enabled", True),
            }
        )
        return self.save_config(config)

    def update_branch(self, branch_id, updates):
        """Returns the updated config, or None when the branch is unknown."""
        config = self.get_config()
        for index, branch in enumerate(config["branches"]):
            if branch.get("id") == branch_id:
                config["branches"][index] = {**branch, **(updates or {}), "id": branch_id}
                return self.save_config(config)
        return None

    def remove_branch(self, branch_id):
        config = self.get_config()
        config["branches"] = [b for b in config["branches"] if b.get("id") != branch_id]
        return self.save_config(config)

    def add_blackout_date(self, date_str):
        if not is_iso_date(date_str):
            raise ValueError("Date must be a valid YYYY-MM-DD date")
        config = self.get_config()
        if date_str in config["scheduling"]["blackoutDates"]:
            return config
        config["scheduling"]["blackoutDates"].append(date_str)
        return self.save_config(config)

    def remove_blackout_date(self, date_str):
        config = self.get_config()
        config["scheduling"]["blackoutDates"] = [
            d for d in config["scheduling"]["blackoutDates"] if d != date_str
        ]
        return self.save_config(config)


def is_iso_date(value):
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def validate_scheduling(scheduling):
    """Reject scheduling that would break slot generation."""
    if not isinstance(scheduling, dict):
        raise ValueError("Scheduling must be an object")
    working_hours = scheduling.get("workingHours") or {}
    if not isinstance(working_hours, dict):
        raise ValueError("workingHours must be an object")
    for day, day_config in working_hours.items():
        if day not in WEEKDAYS:
            raise ValueError(f"Unknown weekday '{day}'")
        if not isinstance(day_config, dict):
            raise ValueError(f"{day}: working hours must be an object")
        for key in ("startTime", "endTime"):
            if key in day_config:
                try:
                    parse_hhmm(day_config[key])
                except ValueError:
                    raise ValueError(f"{day}: {key} must be HH:MM, got '{day_config[key]}'")
        if "startTime" in day_config and "endTime" in day_config:
            if parse_hhmm(day_config["startTime"]) >= parse_hhmm(day_config["endTime"]):
                raise ValueError(f"{day}: startTime must be before endTime")
        if "slotDuration" in day_config:
            duration = day_config["slotDuration"]
            if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
                raise ValueError(f"{day}: slotDuration must be a positive whole number of minutes")
    for key in ("capacityPerSlot", "leadTime", "bufferTime"):
        if key in scheduling:
            value = scheduling[key]
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{key} must be a non-negative number")
    blackout_dates = scheduling.get("blackoutDates") or []
    if not isinstance(blackout_dates, list):
        raise ValueError("blackoutDates must be a list")
    for date_str in blackout_dates:
        if not is_iso_date(date_str):
            raise ValueError(f"Invalid blackout date '{date_str}', expected YYYY-MM-DD")


admin_config = AdminConfigManager()
