from rafflecache.models.base import Base
from rafflecache.models.notification import Notification
from rafflecache.models.polling_state import PollingState
from rafflecache.models.raffle_activity import RaffleActivity
from rafflecache.models.slow_cache_entry import SlowCacheEntry
