#!/usr/bin/env python3
"""
Production Portal - Application Entry Point

Development server:
    python run.py

Provision a factory and its owner:
    flask --app run create-factory --name "Acme Garments" --owner-email owner@acme.test --owner-name "Owner"

Production:
    gunicorn -w 4 -b 0.0.0.0:5000 "portal:create_app('production')"
"""

import os
from portal import create_app

app = create_app(os.environ.get('FLASK_CONFIG', 'development'))

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.environ.get('PORT', 5000)),
        debug=app.config.get('DEBUG', True)
    )
