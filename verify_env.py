from dotenv import load_dotenv
import os

# Force reload to be sure
load_dotenv()

required_keys = [
    "DATABASE_URL",
    "SECRET_KEY",
]

optional_keys = [
    "ALGORITHM",
    "ACCESS_TOKEN_EXPIRE_MINUTES",
    "FRONTEND_URL",
    "LOG_LEVEL",
]


def masked(key, value):
    if ("SECRET" in key or "DATABASE_URL" in key) and len(value) > 3:
        return value[:2] + "****" + value[-1]
    return value


print("--- Checking Environment Variables ---")
all_present = True
for key in required_keys:
    value = os.getenv(key)
    if value:
        print(f"✅ {key}: Found ({masked(key, value)})")
    else:
        print(f"❌ {key}: MISSING")
        all_present = False

for key in optional_keys:
    value = os.getenv(key)
    if value:
        print(f"✅ {key}: Found ({masked(key, value)})")
    else:
        print(f"➖ {key}: not set, using default")

if all_present:
    print("\nSUCCESS: All required variables are loaded.")
else:
    print("\nFAILURE: Some variables are missing (defaults are for development only).")
