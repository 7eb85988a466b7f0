import base64
import json
import sys

# Path to your downloaded Firebase service account JSON file
SERVICE_ACCOUNT_FILE = "firebase-service-account.json"


def encode_service_account(path: str = SERVICE_ACCOUNT_FILE) -> str:
    """
    Produces the value for FIREBASE_SERVICE_ACCOUNT_KEY_BASE64.
    json.dumps keeps it on a single line with internal newlines escaped.
    """
    with open(path, 'r') as f:
        service_account_data = json.load(f)
    service_account_json_string = json.dumps(service_account_data)
    return base64.b64encode(service_account_json_string.encode('utf-8')).decode('utf-8')


if __name__ == '__main__':
    path = sys.argv[1] if len(sys.argv) > 1 else SERVICE_ACCOUNT_FILE
    try:
        encoded = encode_service_account(path)
        print("--- COPY THIS ENTIRE STRING ---")
        print(encoded)
        print("--- END COPY ---")
    except FileNotFoundError:
        print(f"Error: {path} not found. Make sure it's in the same directory.")
        sys.exit(1)
    except json.JSONDecodeError as e:
        print(f"Error: Could not decode JSON from {path}. Check file integrity. Error: {e}")
        sys.exit(1)
