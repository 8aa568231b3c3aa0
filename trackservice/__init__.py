APP_NAME = "trackservice"
