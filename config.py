"""
Configuration Management for the Pose Sequence Classifier
Loads environment variables and provides configuration settings
"""

import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

class Config:
    """Application configuration"""

    # Model assets
    POSE_CLASSIFIER_MODEL = os.getenv('POSE_CLASSIFIER_MODEL', 'assets/pose_classifier.pt')
    POSE_LABELS_FILE = os.getenv('POSE_LABELS_FILE', 'assets/pose_labels.json')
    VIOLENCE_MODEL = os.getenv('VIOLENCE_MODEL', 'assets/violence_lstm.pt')

    # Pose landmarker (upstream detector)
    POSE_MODEL_VARIANT = os.getenv('POSE_MODEL_VARIANT', 'full')    # full | lite | heavy
    MIN_POSE_DETECTION_CONFIDENCE = float(os.getenv('MIN_POSE_DETECTION_CONFIDENCE', 0.7))
    MIN_POSE_TRACKING_CONFIDENCE = float(os.getenv('MIN_POSE_TRACKING_CONFIDENCE', 0.7))
    MIN_POSE_PRESENCE_CONFIDENCE = float(os.getenv('MIN_POSE_PRESENCE_CONFIDENCE', 0.7))
    MAX_POSES = int(os.getenv('MAX_POSES', 5))

    # Inference
    DELEGATE = os.getenv('DELEGATE', 'cpu')                         # cpu | gpu
    SEQUENCE_LENGTH = int(os.getenv('SEQUENCE_LENGTH', 10))
    VIOLENCE_THRESHOLD = float(os.getenv('VIOLENCE_THRESHOLD', 0.3))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/pose_worker.log')
