"""Firebase Admin initialisation and the Firestore dependency"""

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from .config import FIREBASE_PROJECT_ID

logger = logging.getLogger(__name__)


def init_firebase() -> None:
    """Initialize Firebase Admin SDK (only once)"""
    try:
        firebase_admin.get_app()
    except ValueError:
        try:
            # Application Default Credentials (GOOGLE_APPLICATION_CREDENTIALS or metadata server)
            cred = credentials.ApplicationDefault()
            firebase_admin.initialize_app(cred, {"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with default credentials")
        except Exception:
            firebase_admin.initialize_app(options={"projectId": FIREBASE_PROJECT_ID})
            logger.info("Firebase Admin initialized with project ID only")


def get_firestore():
    """FastAPI dependency returning the Firestore client"""
    init_firebase()
    return firestore.client()
