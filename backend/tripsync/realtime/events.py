# client -> server
START_SHARING = "start-sharing"
SEND_LOCATION = "send-location"
STOP_SHARING = "stop-sharing"

# server -> client
USER_STARTED_SHARING = "user-started-sharing"
ACTIVE_MEMBERS_SNAPSHOT = "active-members-snapshot"
RECEIVE_LOCATION = "receive-location"
USER_STOPPED_SHARING = "user-stopped-sharing"
USER_DISCONNECTED = "user-disconnected"
LOCATION_ERROR = "location-error"
