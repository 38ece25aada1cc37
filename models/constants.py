import json
from pathlib import Path

DEMO_CARS_PATH = Path(__file__).parent / "demo_cars.json"

with open(DEMO_CARS_PATH, "r", encoding="utf-8") as f:
    DEMO_CARS = json.load(f)

LISTING_STEPS = ("details", "photos", "pricing", "location", "features", "rules", "review")

STEP_TITLES = {
    "details": "Car Details",
    "photos": "Photos",
    "pricing": "Pricing",
    "location": "Location",
    "features": "Features",
    "rules": "Rules",
    "review": "Review",
}

SORT_KEYS = ("price", "distance", "rating")

AVAILABLE_FEATURES = [
    "Air Conditioning",
    "Bluetooth",
    "GPS Navigation",
    "Backup Camera",
    "USB Charger",
    "Leather Seats",
    "Sunroof",
    "Heated Seats",
    "Cooled Seats",
    "Premium Sound",
    "Wireless Charging",
    "4WD",
    "Cruise Control",
    "Parking Sensors",
]

CAR_MAKES = [
    "Toyota", "Lexus", "Mercedes-Benz", "BMW", "Audi", "Nissan", "Hyundai",
    "Kia", "Honda", "Chevrolet", "Ford", "Range Rover", "Porsche", "Volkswagen",
]

TRANSMISSIONS = ("automatic", "manual")
FUEL_TYPES = ("petrol", "diesel", "electric", "hybrid")

LANGUAGES = {"en": "English", "ar": "العربية"}
