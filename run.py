# /run.py
import os

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

# Now, import the app factory
from app import create_app

app = create_app(os.getenv('FLASK_CONFIG', 'default'))

if __name__ == '__main__':
    port = int(os.getenv('PORT', 5000))
    print("Starting server with Flask dev server...")
    app.run(host='127.0.0.1', port=port, debug=app.config.get('DEBUG', False))
