"""Reference data — roster, scenes, items, chapters, forced events, endings, periods.

Everything here is read-only at runtime. The game looks records up by id and
uses the derived helpers at the bottom of the module:

  get_available_characters(month, characters)  joinMonth <= month
  get_current_chapter(month)                   chapter whose range holds month
  get_month_events(month, triggered)           untriggered events of the month

Chapters cover 1..MAX_MONTHS contiguously with no overlap; tests enforce it.
"""

from __future__ import annotations

from .models import (
    Chapter,
    Character,
    Ending,
    ForcedEvent,
    GameItem,
    Gender,
    Scene,
    StatMeta,
    TimePeriod,
)

MAX_MONTHS = 36
MAX_ACTION_POINTS = 6
INITIAL_MONEY = 100
MONTHLY_EXPENSE = 30

INITIAL_SCENE = "practice"
INITIAL_UNLOCKED_SCENES = ["practice", "meeting", "lounge", "studio"]
INITIAL_INVENTORY = {"aunt-note": 1}
INITIAL_CHOICES = ["查看练习生档案", "巡视事务所", "翻看姑姑的笔记", "召开第一次会议"]

# Fallback choices when the model did not offer any
QUICK_ACTIONS = ["安排训练", "团队建设", "制定计划", "私下谈心"]

PERIODS: list[TimePeriod] = [
    TimePeriod(index=0, name="清晨", icon="🌅", hours="06:00-08:59"),
    TimePeriod(index=1, name="上午", icon="☀️", hours="09:00-11:59"),
    TimePeriod(index=2, name="中午", icon="🌞", hours="12:00-13:59"),
    TimePeriod(index=3, name="下午", icon="⛅", hours="14:00-16:59"),
    TimePeriod(index=4, name="傍晚", icon="🌇", hours="17:00-19:59"),
    TimePeriod(index=5, name="深夜", icon="🌙", hours="20:00-05:59"),
]

ENDING_TYPE_MAP: dict[str, dict[str, str]] = {
    "TE": {"label": "True Ending", "color": "#ffd700", "icon": "👑"},
    "HE": {"label": "Happy Ending", "color": "#e91e8c", "icon": "🌟"},
    "BE": {"label": "Bad Ending", "color": "#6b7280", "icon": "💔"},
    "NE": {"label": "Normal Ending", "color": "#f59e0b", "icon": "🌙"},
}

# Global resource aliases the model may use inside stat tags
GLOBAL_ALIASES: dict[str, str] = {
    "金钱": "money", "资金": "money", "经费": "money",
    "名声": "fame", "声望": "fame", "名气": "fame",
}

# Honorifics NPCs use for the player, per declared gender
HONORIFICS: dict[str, str] = {
    "male": "哥/社长/老板",
    "female": "姐/社长/老板",
    "unspecified": "老师/社长/老板",
}


# ── Roster ───────────────────────────────────────────────

TRAINEE_STAT_METAS: list[StatMeta] = [
    StatMeta(key="trust", label="信任", color="#e91e8c", icon="💕", category="relation"),
    StatMeta(key="dependency", label="依赖", color="#ff6b9d", icon="🤝", category="relation"),
    StatMeta(key="mood", label="心情", color="#ffd700", icon="😊", category="status"),
    StatMeta(key="health", label="健康", color="#00d4ff", icon="💪", category="status"),
    StatMeta(key="stress", label="压力", color="#9333ea", icon="😰", category="status", auto_increment=2),
    StatMeta(key="dance", label="舞蹈", color="#f97316", icon="💃", category="skill"),
    StatMeta(key="singing", label="歌唱", color="#10b981", icon="🎤", category="skill"),
    StatMeta(key="variety", label="综艺感", color="#f59e0b", icon="🎭", category="skill"),
    StatMeta(key="popularity", label="人气", color="#ec4899", icon="⭐", category="skill"),
]

MINSU = Character(
    id="minsu",
    name="金敏秀",
    portrait="/characters/minsu.jpg",
    gender="male",
    age=19,
    title="练习生·主唱",
    description="从小城镇来首尔追梦的少年，歌唱天赋惊人但性格内向敏感。曾在学校被欺凌，极度缺乏自信，害怕舞台。你是他第一个真正信任的人。",
    personality="内向敏感 | 天赋极高 + 缺乏自信 + 完美主义",
    speaking_style="声音柔和，常用省略号，紧张时结巴，唱歌时却判若两人",
    secret="离家出走来的首尔，家人反对他当艺人。曾患过恐慌症，现在舞台恐惧是后遗症",
    trigger_points=['提及"回家"或"放弃"', "被批评唱功", "被迫在陌生人面前表演"],
    behavior_patterns="信任<30沉默回避，30-60逐渐敞开心扉，>60会主动找你倾诉",
    theme_color="#3b82f6",
    join_month=1,
    is_trainee=True,
    stat_metas=TRAINEE_STAT_METAS,
    initial_stats={
        "trust": 50, "dependency": 30, "mood": 60, "health": 80,
        "stress": 20, "dance": 30, "singing": 70, "variety": 20, "popularity": 15,
    },
)

JIYEON = Character(
    id="jiyeon",
    name="朴智妍",
    portrait="/characters/jiyeon.jpg",
    gender="female",
    age=18,
    title="练习生·主舞",
    description="从大型经纪公司被淘汰的练习生，舞蹈实力顶级但曾遭受职场霸凌。外表冷酷倔强，内心渴望被认可。对“事务所”这个词有创伤反应。",
    personality="倔强好胜 | 外冷内热 + 创伤后应激 + 不信任权威",
    speaking_style="简短直接，常用反问，嘴硬心软，生气时语速极快",
    secret="在前公司被前辈霸凌导致膝盖受伤，现在高强度舞蹈后会疼。一直隐瞒伤势",
    trigger_points=['提及"前公司"或"被淘汰"', "被强制做不想做的事", "发现她的膝伤秘密"],
    behavior_patterns="信任<30充满敌意测试你，30-60表面配合暗中观察，>60真正接纳成为核心",
    theme_color="#ec4899",
    join_month=1,
    is_trainee=True,
    stat_metas=TRAINEE_STAT_METAS,
    initial_stats={
        "trust": 35, "dependency": 15, "mood": 45, "health": 65,
        "stress": 40, "dance": 75, "singing": 35, "variety": 40, "popularity": 25,
    },
)

SEONGHOON = Character(
    id="seonghoon",
    name="崔成勋",
    portrait="/characters/seonghoon.jpg",
    gender="male",
    age=20,
    title="练习生·综艺",
    description="富二代出身却执意要当艺人的阳光大男孩，综艺感天生但唱跳都是短板。父亲给了他36个月期限——出道失败就回家继承公司。",
    personality="乐观开朗 | 综艺天才 + 隐藏压力 + 不想被当少爷",
    speaking_style="活泼话多，爱用网络流行语，搞笑段子信手拈来，认真时反差萌",
    secret="父亲是韩国某财阀分支。36个月期限不是空话，父亲已安排好接班计划。私下偷偷加练到凌晨",
    trigger_points=['提及"有钱人"或"少爷"', "质疑他的认真程度", "发现他深夜独自练习"],
    behavior_patterns="信任<30嘻嘻哈哈遮掩真心，30-60展现认真的一面，>60分享家庭压力和真实恐惧",
    theme_color="#fbbf24",
    join_month=1,
    is_trainee=True,
    stat_metas=TRAINEE_STAT_METAS,
    initial_stats={
        "trust": 60, "dependency": 40, "mood": 85, "health": 90,
        "stress": 15, "dance": 25, "singing": 30, "variety": 80, "popularity": 45,
    },
)

# Rival from NOVA Ent. — a single relation stat, not part of the playable roster
ARIN = Character(
    id="arin",
    name="姜雅琳",
    portrait="/characters/arin.jpg",
    gender="female",
    age=19,
    title="NOVA Ent. 王牌练习生",
    description="对手大公司的绝对王牌，实力颜值兼具的完美练习生。表面高傲冷漠，实际是被公司当作武器培养、失去自我的可怜人。",
    personality="高傲冷漠 | 完美主义 + 内心空虚 + 渴望真正的友情",
    speaking_style="冷淡礼貌，敬语为主，偶尔露出真性情时语气会突然变软",
    secret="其实厌倦了被公司操控的生活。曾偷偷观看你们事务所的公演视频，羡慕那种真实的快乐",
    trigger_points=["嘲笑小事务所", "展现真诚态度", "在她面前承认弱点"],
    behavior_patterns="态度<30完全敌对蔑视，30-60好奇但保持距离，>60暗中帮助甚至考虑跳槽",
    theme_color="#6b7280",
    join_month=1,
    is_trainee=False,
    stat_metas=[
        StatMeta(key="attitude", label="态度", color="#6b7280", icon="💎", category="relation"),
    ],
    initial_stats={"attitude": 40},
)

ROSTER: list[Character] = [MINSU, JIYEON, SEONGHOON, ARIN]


def build_characters(player_gender: Gender = "unspecified") -> dict[str, Character]:
    """Build the roster for a player. Table order is significant for lookups."""
    if player_gender not in HONORIFICS:
        raise ValueError(f"Unknown player gender: {player_gender!r}")
    return {c.id: c for c in ROSTER}


# ── Scenes ───────────────────────────────────────────────

SCENES: dict[str, Scene] = {
    "practice": Scene(
        id="practice",
        name="练习室",
        icon="🎵",
        description="铺着镜面的宽敞练习室，音响设备一应俱全。汗水和梦想交织的地方，每一面镜子都映射着练习生的努力。",
        background="/scenes/practice.jpg",
        atmosphere="热血、汗水、努力",
        tags=["训练", "舞蹈", "歌唱"],
    ),
    "meeting": Scene(
        id="meeting",
        name="会议室",
        icon="📋",
        description="事务所的决策中心，白板上贴满了训练计划和出道时间表。姑姑留下的笔记还散落在桌上。",
        background="/scenes/meeting.jpg",
        atmosphere="严肃、决策、规划",
        tags=["管理", "策划", "商务"],
    ),
    "lounge": Scene(
        id="lounge",
        name="休息室",
        icon="🛋️",
        description="温馨的小休息室，有沙发、零食柜和一台老旧电视。练习生们在这里放松、聊天、偶尔吵架又和好。",
        background="/scenes/lounge.jpg",
        atmosphere="温馨、放松、日常",
        tags=["休息", "社交", "治愈"],
    ),
    "studio": Scene(
        id="studio",
        name="录音室",
        icon="🎙️",
        description="隔音良好的专业录音室，虽然设备老旧但保养得很好。墙上贴着姑姑曾经制作人时代的金唱片。",
        background="/scenes/studio.jpg",
        atmosphere="专注、创作、灵感",
        tags=["录音", "创作", "专业"],
    ),
}


# ── Items ────────────────────────────────────────────────

ITEMS: dict[str, GameItem] = {
    "aunt-note": GameItem(
        id="aunt-note",
        name="姑姑的笔记",
        icon="📝",
        type="quest",
        description="姑姑留下的经营笔记，记录着事务所的历史和她对练习生们的期望。字迹潦草但充满感情。",
        max_count=1,
    ),
    "training-gear": GameItem(
        id="training-gear",
        name="专业训练设备",
        icon="🎧",
        type="upgrade",
        description="高品质训练设备套装，能显著提升训练效果。需要 50 万韩元购入。",
        max_count=1,
        cost=50,
    ),
    "debut-invitation": GameItem(
        id="debut-invitation",
        name="出道舞台邀请函",
        icon="💌",
        type="quest",
        description="电视台发来的出道舞台邀请函。这是你们梦寐以求的机会，但准备时间只有一个月。",
        max_count=1,
    ),
    "comfort": GameItem(
        id="comfort",
        name="安慰鼓励",
        icon="🫂",
        type="social",
        description="温暖的话语和拥抱，能有效缓解练习生的压力和负面情绪。",
        max_count=99,
    ),
    "encourage": GameItem(
        id="encourage",
        name="激励训话",
        icon="🔥",
        type="social",
        description="热血沸腾的激励演讲，能激发练习生的斗志和训练热情。",
        max_count=99,
    ),
    "strict": GameItem(
        id="strict",
        name="严格管教",
        icon="📏",
        type="social",
        description="严厉但公正的批评指导。短期压力增加但长期技能提升更快。",
        max_count=99,
    ),
}


# ── Chapters ─────────────────────────────────────────────

CHAPTERS: list[Chapter] = [
    Chapter(
        id=1,
        name="破晓时分",
        month_range=(1, 6),
        description="姑姑突然消失，留下一间濒临倒闭的事务所和三个性格各异的练习生。你必须在混乱中建立秩序。",
        objectives=["了解每位练习生的性格和需求", "制定基础训练计划", "维持事务所不破产"],
        atmosphere="迷茫中带着希望",
    ),
    Chapter(
        id=2,
        name="星光初现",
        month_range=(7, 18),
        description="练习生们开始展露光芒，但竞争对手 NOVA Ent. 虎视眈眈。内部矛盾和外部压力交织，考验你的管理智慧。",
        objectives=["提升练习生综合实力", "应对 NOVA 的挖角和打压", "策划第一次公演"],
        atmosphere="紧张、成长、竞争",
    ),
    Chapter(
        id=3,
        name="璀璨之夜",
        month_range=(19, 36),
        description="出道之路进入最后冲刺。练习生们必须面对最终选拔的残酷考验，而你必须做出影响所有人命运的抉择。",
        objectives=["完成出道准备", "处理每位练习生的个人危机", "在出道舞台上绽放"],
        atmosphere="悲壮、希望、绽放",
    ),
]


# ── Forced events ────────────────────────────────────────

MILESTONE_EVENT = "aunt-truth"

FORCED_EVENTS: list[ForcedEvent] = [
    ForcedEvent(
        id="recruit",
        name="接管事务所",
        trigger_month=1,
        trigger_period=0,
        description="你推开事务所的门，三双眼睛望向你——金敏秀紧张地低头，朴智妍冷冷地打量你，崔成勋笑着递上咖啡。姑姑的办公桌上放着一封信。",
    ),
    ForcedEvent(
        id="first-show",
        name="首次公演",
        trigger_month=6,
        description="事务所的首次公开表演来了。虽然只是商场小舞台，但对练习生们来说意义非凡。准备得怎么样了？",
    ),
    ForcedEvent(
        id="poach-attempt",
        name="NOVA 的挖角",
        trigger_month=10,
        trigger_period=2,
        description="NOVA Ent. 的制作人直接来到你的事务所，当着你的面向练习生们抛出橄榄枝。姜雅琳站在他身后，表情复杂。",
    ),
    ForcedEvent(
        id="scandal-crisis",
        name="丑闻危机",
        trigger_month=15,
        description="网上突然出现针对你事务所练习生的恶意爆料。真假参半的信息疯狂传播，事务所的名声岌岌可危。",
    ),
    ForcedEvent(
        id=MILESTONE_EVENT,
        name="姑姑的真相",
        trigger_month=30,
        trigger_period=4,
        description="一封没有署名的信寄到了事务所。熟悉的字迹写着：“我离开，是为了让你找到自己的路。”姑姑从未真正放弃这里。",
    ),
    ForcedEvent(
        id="debut-stage",
        name="出道舞台",
        trigger_month=36,
        trigger_period=3,
        description="最终时刻到来。聚光灯亮起，镜头对准舞台中央。三位练习生站在出道舞台上，你在后台屏住呼吸...",
    ),
]


# ── Endings ──────────────────────────────────────────────

ENDINGS: list[Ending] = [
    Ending(
        id="te-legacy",
        name="星光传承",
        type="TE",
        description="三位练习生不仅成功出道，更成为引领新时代的偶像。姑姑回来了，看着你把事务所经营得比她当年还好，留下骄傲的泪水。你发现了姑姑离开的真相——她是为了让你找到自己的道路。这间小事务所，成了所有人的家。",
        condition="全员信任≥70 + 发现姑姑真相 + 成功出道",
    ),
    Ending(
        id="he-debut",
        name="梦想绽放",
        type="HE",
        description="出道舞台上灯光璀璨，三位练习生完美演绎了你们共同创作的出道曲。虽然只是小公司的出道，但每个音符都饱含真心。你在后台热泪盈眶——他们真的做到了。",
        condition="均信任≥50 + 技能达标 + 成功出道",
    ),
    Ending(
        id="be-bankrupt",
        name="梦碎首尔",
        type="BE",
        description="账户余额归零。银行的催款电话响个不停，房东贴出了限期搬离通知。练习生们默默收拾行李，谁也不看谁。金敏秀走的时候说了句“谢谢你”。你一个人坐在空荡荡的练习室里，霓虹灯在窗外忽明忽暗。",
        condition="金钱降至 0",
    ),
    Ending(
        id="be-all-leave",
        name="众叛亲离",
        type="BE",
        description="最后一个练习生也走了。你站在空无一人的事务所里，墙上还贴着当初的训练计划。所有的梦想、承诺、汗水，都随着关门声消散在首尔的夜色中。",
        condition="所有练习生信任<20",
    ),
    Ending(
        id="ne-landing",
        name="软着陆",
        type="NE",
        description="出道不算失败，但也谈不上成功。在竞争残酷的 K-pop 界，他们只是众多新人中不起眼的一组。但至少你们尝试过了，至少你们拥有彼此。有些梦想不需要轰轰烈烈，平安着地已是万幸。",
        condition="出道但综合评分不足",
    ),
]

ENDINGS_BY_ID: dict[str, Ending] = {e.id: e for e in ENDINGS}


# ── Story header and lore ────────────────────────────────

STORY_INFO = {
    "genre": "K-pop 养成",
    "title": "首尔星梦事务所",
    "subtitle": "Seoul Star Dream Agency · K-pop 养成冒险",
    "description": (
        "一通深夜来电打破了你平静的生活——"
        "姑姑经营的练习生事务所濒临倒闭，而她本人不知去向。"
        "你赶到首尔，推开那间小事务所的门，"
        "三个怀揣梦想的年轻人正等着一个答案：这个事务所，还能继续吗？"
    ),
    "goals": [
        "在 36 个月内培养 3 位练习生成功出道",
        "维持事务所的资金运转不破产",
        "赢得每位练习生的信任和成长",
        "应对对手 NOVA Ent. 的竞争和危机",
    ],
}

GAME_SCRIPT = """\
### 世界观
现代首尔。大型经纪公司垄断资源，小事务所在夹缝中求生。玩家是刚接管姑姑事务所的新任社长，\
姑姑下落不明，只留下一本经营笔记和三位练习生。

### 叙事规则
- 以第二人称“你”描写玩家，NPC 对白用引号，动作与神态写在括号或星号中。
- 角色开口前可用【角色名】标明说话人。
- 数值变化必须单独成行，格式为【角色名 数值名+N】或【金钱-N】【名声+N】，N 为整数。
- 单次回复中每项数值变化幅度不超过 10，金钱变化不超过 50。
- 尊重每位角色的说话风格、触发点和行为模式，信任越高越愿意袒露秘密。
- 不要替玩家做决定，不要跳过时间，时间只由玩家推进。

### 主线
1. 破晓时分（1-6月）：稳住事务所，了解每位练习生。
2. 星光初现（7-18月）：首次公演、NOVA 挖角、丑闻危机。
3. 璀璨之夜（19-36月）：姑姑的真相浮出水面，出道舞台决定一切。
"""


# ── Derived lookups ──────────────────────────────────────

def get_stat_level(value: int) -> tuple[int, str]:
    """Return (level, label) for a relation value."""
    if value >= 80:
        return 4, "深度信赖"
    if value >= 60:
        return 3, "伙伴关系"
    if value >= 30:
        return 2, "逐渐了解"
    return 1, "初步接触"


def get_available_characters(
    month: int, characters: dict[str, Character]
) -> dict[str, Character]:
    """Characters visible in the given month, in table order."""
    return {cid: c for cid, c in characters.items() if c.join_month <= month}


def get_current_chapter(month: int) -> Chapter:
    """Chapter whose inclusive month range contains month, else the first chapter."""
    for chapter in CHAPTERS:
        start, end = chapter.month_range
        if start <= month <= end:
            return chapter
    return CHAPTERS[0]


def get_month_events(month: int, triggered_ids: list[str]) -> list[ForcedEvent]:
    """Forced events scheduled for month that have not fired yet."""
    return [
        e for e in FORCED_EVENTS
        if e.trigger_month == month and e.id not in triggered_ids
    ]
