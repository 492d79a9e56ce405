"""
Configuration settings for the Motion Gesture Trainer.

This module centralizes all configurable parameters to make the system
easy to tune and deploy in different environments.
"""
import os

# =============================================================================
# PATHS CONFIGURATION
# =============================================================================
# Base directory of the package
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Directory for persisted models and their metadata
MODELS_DIR = os.environ.get(
    'GESTURE_TRAINER_MODELS_DIR',
    os.path.join(os.path.dirname(BASE_DIR), 'models')
)

# Base name used by the model store for <name>.keras / <name>.joblib
DEFAULT_MODEL_NAME = 'gesture_model'

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================
LOG_LEVEL = os.environ.get('GESTURE_TRAINER_LOG_LEVEL', 'INFO')
LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

# =============================================================================
# ACCELEROMETER SIGNAL CONFIGURATION
# =============================================================================
# Axes included in every feature vector, in this order
INCLUDED_AXES = ('x', 'y', 'z')

# Data window used by recordings made before the sampling rate was raised.
# (duration ms, min samples, device sample period ms, device samples per window)
LEGACY_DATA_WINDOW = {
    'duration': 1800,
    'min_samples': 80,
    'device_samples_period': 25,
    'device_samples_length': 80,
}

# Current data window: 50 samples at 20 ms intervals is about 1 second
CURRENT_DATA_WINDOW = {
    'duration': 990,
    'min_samples': 44,
    'device_samples_period': 20,
    'device_samples_length': 50,
}

# Capacity of the live sample ring buffer (several windows of history)
SAMPLE_BUFFER_CAPACITY = 300

# =============================================================================
# FILTER CONFIGURATION
# =============================================================================
# Accelerometer range in g (micro:bit raw values are divided by 1000)
MAX_ACCELERATION = 2.048

# PEAKS: a local maximum counts when it rises this many standard deviations
# above the window mean
PEAKS_THRESHOLD_STD = 1.0

# PEAKS: minimum separation between two counted peaks
PEAKS_MIN_SEPARATION_MS = 100

# Expected upper bound of the PEAKS count, used for normalization
PEAKS_MAX_COUNT = 10

# =============================================================================
# AUGMENTATION CONFIGURATION
# =============================================================================
# Rotation angles are drawn uniformly from [-MAX_ROTATION_DEGREES, +MAX_ROTATION_DEGREES]
MAX_ROTATION_DEGREES = 5.0

# Number of rotated copies generated per recording
ROTATION_COUNT = 3

# Standard deviation (g) of the Gaussian noise added by dithering
DITHERING_NOISE_FACTOR = 0.02

# Spread of the per-copy scale factor used by distortion
DISTORTION_FACTOR = 0.05

# Number of synthetic copies per recording
DITHERING_COUNT = 3
DISTORTION_COUNT = 3

# =============================================================================
# TRAINING CONFIGURATION
# =============================================================================
# Minimum number of actions and of non-test recordings per action
MIN_ACTIONS_FOR_TRAINING = 2
MIN_RECORDINGS_PER_ACTION = 3

# Fixed sequence length fed to the recurrent model
SEQUENCE_LENGTH = 49

# Pause after announcing "training started", before the CPU bound fit
TRAINING_START_DELAY_S = 0.1

# Random seed for reproducibility (None keeps training non-deterministic)
RANDOM_SEED = None

# Hidden layer scale for the deep dense network
DEEP_HIDDEN_LAYERS = 2

# =============================================================================
# INFERENCE CONFIGURATION
# =============================================================================
# How often the prediction loop polls the sample buffer
UPDATES_PER_SECOND = 4

# Confidence an action needs before it is reported as detected
DEFAULT_REQUIRED_CONFIDENCE = 0.8

# Target latency of one prediction tick in milliseconds
TARGET_LATENCY_MS = 100

# =============================================================================
# ACTION CONFIGURATION
# =============================================================================
# Icons handed out to new actions, first unused one wins
DEFAULT_ICONS = (
    'Heart', 'SmallHeart', 'Yes', 'No', 'Happy', 'Sad', 'Confused',
    'Angry', 'Asleep', 'Surprised', 'Silly', 'Fabulous', 'Meh',
    'TShirt', 'Rollerskate', 'Duck', 'House', 'Tortoise', 'Butterfly',
    'StickFigure', 'Ghost', 'Sword', 'Giraffe', 'Skull', 'Umbrella', 'Snake',
)

# Icon used when every default icon is already taken
FALLBACK_ICON = 'Heart'

# Value stored in testsPassed for a freshly created action
INITIAL_TESTS_PASSED = 100

# =============================================================================
# SIMULATED ACCELEROMETER STREAM CONFIGURATION
# =============================================================================
# Interval between simulated samples in milliseconds
STREAM_INTERVAL_MS = CURRENT_DATA_WINDOW['device_samples_period']

# Noise standard deviation (g) of simulated samples
SIMULATED_NOISE_STD = 0.03

# Gestures the simulated source can produce
SIMULATED_GESTURES = ('still', 'shake', 'circle', 'tap')

# =============================================================================
# FLASK SERVER CONFIGURATION
# =============================================================================
FLASK_HOST = os.environ.get('GESTURE_TRAINER_HOST', '0.0.0.0')
FLASK_PORT = int(os.environ.get('GESTURE_TRAINER_PORT', '5000'))
FLASK_DEBUG = False

# Maximum file upload size (16 MB)
MAX_UPLOAD_SIZE_MB = 16
