import requests
import time

BASE_URL = "http://127.0.0.1:8000"

def test_backend():
    print(f"Testing connectivity to {BASE_URL}...")
    try:
        # 1. Health Check
        resp = requests.get(f"{BASE_URL}/api/health")
        print(f"Health endpoint status: {resp.status_code}")
        if resp.status_code != 200:
            print("FAILED: Backend seems down or returning error.")
            return

        # 2. Register User
        email = f"test_{int(time.time())}@example.com"
        password = "Testpassword123"
        print(f"Attempting to register user: {email}")

        reg_resp = requests.post(f"{BASE_URL}/api/auth/register", json={
            "name": "Smoke Tester",
            "email": email,
            "password": password,
            "confirmPassword": password,
        })
        print(f"Registration response: {reg_resp.status_code} - {reg_resp.text}")

        if reg_resp.status_code != 201:
            print("Registration FAILED.")
            return

        # 3. Login (Get Token)
        print("Attempting to login...")
        login_resp = requests.post(f"{BASE_URL}/api/auth/token", data={
            "username": email, # OAuth2 form field carries the email
            "password": password
        })
        print(f"Login response: {login_resp.status_code}")
        if login_resp.status_code != 200:
            print("Login FAILED.")
            return
        headers = {"Authorization": f"Bearer {login_resp.json()['access_token']}"}

        # 4. Read-only engines
        board = requests.get(f"{BASE_URL}/api/leaderboard", headers=headers)
        print(f"Leaderboard: {board.status_code} - users={board.json().get('pagination', {}).get('totalUsers')}")

        stats = requests.get(f"{BASE_URL}/api/leaderboard/stats")
        print(f"Stats: {stats.status_code} - {stats.json().get('totals')}")

        tree_map = requests.get(f"{BASE_URL}/api/map/trees", params={"zoom": 5})
        print(f"Map: {tree_map.status_code} - clusters={tree_map.json().get('total')}")

        bad = requests.get(f"{BASE_URL}/api/map/trees", params={"bounds": "1,2,3"})
        if bad.status_code == 400:
            print("SUCCESS: Malformed bounds rejected as expected.")
        else:
            print(f"WARNING: Malformed bounds returned {bad.status_code}")

    except Exception as e:
        print(f"EXCEPTION: {e}")

if __name__ == "__main__":
    test_backend()
