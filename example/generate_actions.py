import json
import random
import uuid
from datetime import datetime, timedelta, timezone

ACTIONS = ["view", "view", "view", "clicked", "redirect", "map_open", "share", "favorite"]
DEVICES = ["ios", "android", "web", None]
CITIES = [("Tashkent", "Tashkent"), ("Samarkand", "Samarkand"), ("Bukhara", "Bukhara"), (None, None)]
AGE_GROUPS = ["18-24", "25-34", "35-44", "45+", None]
GENDERS = ["male", "female", None]


def generate_actions(num_actions: int, discount_ids=(1, 2, 3), users: int = 200):
    base_time = datetime.now(timezone.utc)

    actions = []
    for _ in range(num_actions):
        city, region = random.choice(CITIES)
        action = {
            "event_id": str(uuid.uuid4()),
            "discount_id": random.choice(discount_ids),
            "action": random.choice(ACTIONS),
            "occurred_at": (base_time - timedelta(seconds=random.randint(0, 3600 * 24 * 60))).isoformat(),
            "user_id": random.choice([None, random.randint(1, users)]),
            "device_type": random.choice(DEVICES),
            "city": city,
            "region": region,
            "age_group": random.choice(AGE_GROUPS),
            "gender": random.choice(GENDERS),
        }
        actions.append(action)
    return {"actions": actions}


def main():
    data = generate_actions(5000)
    with open("actions.json", "w") as f:
        json.dump(data, f, indent=2)


if __name__ == "__main__":
    main()
