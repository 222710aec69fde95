# Overview: Organization role names grouped by the authority they carry.
# Names are matched after trimming surrounding whitespace.


# -- APPROVING ROLES --

# 3단계 및 최종승인
FINAL_APPROVER_ROLES = ("교구장", "부교구장", "위원장", "부위원장")

# 2단계 승인
SENIOR_APPROVER_ROLES = ("부장", "차장", "총무")

# 1단계 승인 + 지출결의서 작성
FINANCIAL_STAFF_ROLES = ("회계", "부회계")


# -- NON-APPROVING ROLES --

# Ministry titles match by substring; 교역자 matches exactly
MINISTRY_KEYWORDS = ("목사", "전도사")
MINISTRY_EXACT = ("교역자",)

LEADERSHIP_ROLES = ("회장", "단장", "교역자", "엘더", "교구권사")

MANAGEMENT_ROLES = ("서기", "부서기", "임원", "대장")

# Substrings that mark a final-approver title as a committee chair
CHAIR_KEYWORDS = ("위원장", "교구장")


TIER_DESCRIPTIONS = {
    3: "3단계 및 최종승인 권한",
    2: "2단계 승인 권한",
    1: "1단계 승인 권한",
    0: "승인 권한 없음",
}

ORIGINATION_SUFFIX = "지출결의서 작성 가능"


# Standard roles seeded for a new tenant: (name, english_name, level, is_leadership)
STANDARD_ROLES = [
    ("위원장", "Committee Chair", 100, True),
    ("교구장", "Parish Head", 100, True),
    ("부위원장", "Vice Committee Chair", 90, True),
    ("부교구장", "Vice Parish Head", 90, True),
    ("부장", "Department Head", 80, True),
    ("차장", "Deputy Head", 70, True),
    ("총무", "General Secretary", 70, True),
    ("회계", "Treasurer", 60, False),
    ("부회계", "Assistant Treasurer", 55, False),
    ("회장", "President", 50, True),
    ("단장", "Group Leader", 50, True),
    ("교역자", "Ministry Staff", 50, False),
    ("엘더", "Elder", 45, True),
    ("교구권사", "Parish Deaconess", 40, False),
    ("서기", "Clerk", 30, False),
    ("부서기", "Assistant Clerk", 25, False),
    ("임원", "Officer", 20, False),
    ("대장", "Captain", 20, False),
    ("부원", "Member", 0, False),
]
