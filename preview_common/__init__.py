from preview_common.constants import *
from preview_common.core_utils import *
from preview_common.path_utils import *
from preview_common.config_utils import *
from preview_common.exclude_utils import *
from preview_common.algo_utils import *
from preview_common.history_utils import *
from preview_common.session_utils import *
from preview_common.host_utils import *
from preview_common.format_utils import *
