# videos directories
INPUT_DIR = "./videos/inputs"
KEEP_DIR = "./videos/motion"
DISCARD_DIR = "./videos/no_motion"
LOG_PATH = "./videos/results.csv"

# region of interest for a 1920x1080 circular fisheye
ROI_CROP = (420, 0, 1080, 1080)  # (x, y, w, h) in frame pixels
ROI_CENTER = (960, 540)  # (cx, cy) in frame pixels
ROI_RADIUS = 530

# background subtractor settings (MOG2 algorithm)
# https://docs.opencv.org/4.x/d7/d7b/classcv_1_1BackgroundSubtractorMOG2.html
BG_HISTORY = 500  # Frames over which the background adapts
BG_VAR_THRESHOLD = 16  # Squared Mahalanobis distance for background/foreground
BG_DETECT_SHADOWS = False  # Output must stay strictly binary
BG_BACKEND = "cpu"  # "cpu", "cuda" or "auto"

# blob detector settings, applied to the inverted peak mask
BLOB_MIN_AREA = 25.0
BLOB_MAX_AREA = 5000.0

# classification thresholds
MOTION_THRESHOLD = 50000.0  # Mean foreground mass per motion frame (mask values are 0/255)
BLOB_THRESHOLD = 20.0  # Largest blob diameter in pixels

# video processing settings
FALLBACK_FPS = 30.0  # FPS to use if video metadata is missing
VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}
WORKERS = 1  # Videos processed in parallel

# results log
LOG_HEADER = ("Filename", "Duration", "Metric1", "Metric2", "TimeOfMaxMotion", "Saved")
