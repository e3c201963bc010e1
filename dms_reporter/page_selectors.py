# File: dms_reporter/page_selectors.py
# Selector tables for the GPS dashboard. The SPA has no stable ids past the
# login form, so most targets carry an ordered fallback list.
from dms_reporter.locator import script, text, xpath

# ── Login page ───────────────────────────────────────────────────────────────
LOGIN_PAGE_MARKER = "login.html"
CAPTCHA_IMAGE = "#lwm"
LOGIN_ACCOUNT = "#loginAccount"
LOGIN_PASSWORD = "#loginPassword"
LOGIN_CAPTCHA = "#phraseLogin"
LOGIN_SUBMIT = "#loginSubmit"

# ── Dashboard → report centre (opens a new tab) ─────────────────────────────
OPEN_REPORT_CENTER_SCRIPT = """() => {
    if (typeof showReportCenter === 'function') {
        showReportCenter();
        return 'Executed showReportCenter() directly';
    }
    const btn = document.querySelector('div[onclick*="showReportCenter"]') ||
                document.querySelector('#main-topPanel > div.header-nav > div:nth-child(7)');
    if (btn) { btn.click(); return 'Clicked element via JS'; }
    return null;
}"""

# Chrome interstitial for the plain-http report centre
INSECURE_TITLE_MARKERS = ("Privacy", "Security")
INSECURE_DETAILS_BUTTON = "#details-button"
INSECURE_PROCEED_LINK = "#proceed-link"

REPORT_ROOT = "xpath=//*[@id='root']"

# ── Report filters ───────────────────────────────────────────────────────────
DMS_REPORT_LABEL = "รายงาน DMS"

DMS_REPORT_STRATEGIES = [
    xpath('//*[local-name()="svg" and @data-testid="FaceIcon"]/..'),
    xpath('//*[@id="root"]/div/div[2]/div[1]/div/button[2]'),
    xpath(f'//button[contains(., "{DMS_REPORT_LABEL}")]'),
    script(
        """() => {
            const buttons = Array.from(document.querySelectorAll('button'));
            const dmsBtn = buttons.find(b => b.textContent.includes('%s'));
            if (dmsBtn) { dmsBtn.click(); return true; }
            return false;
        }"""
        % DMS_REPORT_LABEL
    ),
]

ALERT_TYPE_DROPDOWN = '//div[contains(@class, "css-xn5mga")]//tr[2]//td[2]//div/div'
ALERT_TYPE_LABELS = (
    "แจ้งเตือนการหาวนอน",
    "แจ้งเตือนการหลับตา",
)


def alert_option_strategies(label: str):
    return [
        xpath(f"//div[contains(text(), '{label}')]", timeout_ms=3_000),
        text(label, timeout_ms=3_000),
    ]


START_DATE_INPUT = '//div[contains(@class, "css-xn5mga")]//tr[3]//td[2]//input'
END_DATE_INPUT = '//div[contains(@class, "css-xn5mga")]//tr[3]//td[4]//input'

# ── Export dialog ────────────────────────────────────────────────────────────
SAVE_BUTTON_STRATEGIES = [
    script(
        """() => {
            const saveBtn = document.querySelector("#root > div > div.MuiBox-root.css-jbmhbb > div.ant-card.ant-card-bordered.css-y8x9xp > div.ant-card-body > div > div > div > ul > li > div > div > div > div > button");
            if (saveBtn) { saveBtn.click(); return true; }
            return false;
        }"""
    ),
    xpath(
        '//*[@id="root"]/div/div[1]/div[2]/div[2]/div/div/div/ul/li/div/div/div/div/button/*[local-name()="svg"]'
        ' | //*[@data-testid="SaveOutlinedIcon"]',
        timeout_ms=60_000,
    ),
]
