from datetime import date, timedelta

SERVICES = {
    "optimization": {
        "title": "PC Optimization",
        "price": 30,
        "description": "Deep system cleanup, performance tuning, and optimization",
    },
    "repair": {
        "title": "PC Repair",
        "price": 20,
        "description": "Hardware diagnostics, component repair, and system recovery",
    },
}

RUSH_SURCHARGE = 20
RUSH_TIME = "ASAP"

TIME_SLOTS = [
    "09:00 AM", "10:00 AM", "11:00 AM", "12:00 PM",
    "01:00 PM", "02:00 PM", "03:00 PM", "04:00 PM",
    "05:00 PM", "06:00 PM", "07:00 PM", "08:00 PM", "09:00 PM",
]

BOOKING_HORIZON_DAYS = 14


def total_for(service_type: str, is_rush: bool) -> int:
    base = SERVICES[service_type]["price"]
    return base + (RUSH_SURCHARGE if is_rush else 0)


def is_offered_slot(time: str) -> bool:
    # labels are matched exactly; "10:00 am" is not "10:00 AM"
    return time in TIME_SLOTS


def bookable_dates(today: date) -> list[date]:
    return [today + timedelta(days=i) for i in range(BOOKING_HORIZON_DAYS)]


def catalogue() -> dict:
    return {
        "services": [
            {"service_type": key, **details} for key, details in SERVICES.items()
        ],
        "rush_surcharge": RUSH_SURCHARGE,
        "time_slots": list(TIME_SLOTS),
        "horizon_days": BOOKING_HORIZON_DAYS,
    }
