"""Icotera i4850 admin UI contract.

Element selectors and page scripts the engine is written against. Element
ids on this firmware contain dots, so ids are matched with attribute
selectors instead of escaped '#' selectors.
"""

# Login page
LOGIN_BUTTON = 'input[value="Log in"]'
LOGIN_USERNAME = 'input[name="username"]'
LOGIN_PASSWORD = 'input[name="password"]'
LANDING_MARKER = "div.C_CSS_content_column"

# Navigation tree
TREE_ROOT = "#TREENODE_0"
LAN_STATUS_LINK = 'li[data-nodeid="systemstatus.lan"] > a'

# Static lease table: IP, MAC, hostname, enabled checkbox
LEASE_TABLE_ID = "BR.1.LEASES.STATIC"
LEASE_TABLE = f'[id="{LEASE_TABLE_ID}"]'
COL_IP = 0
COL_MAC = 1
COL_HOSTNAME = 2
COL_ENABLED = 3

# Add-entry form row
ADD_ROW = '[id="BRIDGE.1.STATICLEASES.0.INPUT"]'
ADD_BUTTON = 'tr[id="BRIDGE.1.STATICLEASES.0.INPUT"] input[value="Add"]'
FIELD_IP = '[id="HLP.action.newstaticlease.ip"]'
FIELD_MAC = '[id="HLP.action.newstaticlease.mac"]'
FIELD_HOSTNAME = '[id="HLP.action.newstaticlease.host"]'
FIELD_ENABLED = '[id="HLP.action.newstaticlease.status"]'

# Pending-change commit and response overlay
APPLY_BUTTON = "#btn_apply"
OVERLAY = "#content_overlay"
OVERLAY_PANEL = "#content_overlay_panel"
OVERLAY_CONTENT = "#content_overlay_content"
CONTINUE_BUTTON = '.C_CSS_flatbtn[value="Continue"]'
LOADING = ".C_CSS_LoadingDiv"
ERROR_MARKER = ".C_CSS_MsgReportBox"
