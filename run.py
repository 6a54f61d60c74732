#!/usr/bin/env python3
"""
Development entry point for the dispatch API

    FLASK_ENV=development python run.py
"""
import os

from fieldops import create_app

app = create_app()

if __name__ == '__main__':
    app.run(
        host=os.getenv('HOST', '127.0.0.1'),
        port=int(os.getenv('PORT', 5000)),
        debug=app.config.get('DEBUG', False),
    )
