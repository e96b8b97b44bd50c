# Overview: Flask extension instances for the local database.

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
